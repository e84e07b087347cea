from tarball_serve.interfaces.cli import main

main()

"""
S3 互換バケットのチャネルを lockable tarball プロトコルで配信するサービス。
"""

__version__ = "0.1.0"

"""
外部インターフェース層（HTTP API・CLI・ワーカー）。
"""

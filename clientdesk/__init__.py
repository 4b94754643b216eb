"""ClientDesk - クライアント・プロジェクト・タスク管理のデータアクセス層"""

__version__ = "0.1.0"

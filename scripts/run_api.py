#!/usr/bin/env python3
"""
テスター API サーバーを起動するエントリポイント

環境変数 TESTER_API_HOST / TESTER_API_PORT で待ち受け先を変更できる。
"""
import os
import sys
from pathlib import Path

# プロジェクトルートをPYTHONPATHに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import uvicorn
from dotenv import load_dotenv

if __name__ == "__main__":
    load_dotenv(project_root / ".env")
    uvicorn.run(
        "api.main:app",
        host=os.getenv("TESTER_API_HOST", "127.0.0.1"),
        port=int(os.getenv("TESTER_API_PORT", "8000")),
        reload=True  # 開発時の自動リロード
    )

#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

Creates the tables on the configured database, then serves the API with
auto-reload. For local development only.
"""
import uvicorn

from marketchat.core.config import settings
from marketchat.init_db import init_db

if __name__ == "__main__":
    init_db()
    print(f"Starting marketchat ({settings.environment}) at http://localhost:8000")
    print("API Docs: http://localhost:8000/docs")

    uvicorn.run("marketchat.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")

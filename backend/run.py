#!/usr/bin/env python3
# backend/run.py
"""
Development server runner for the realtime gateway.
For local development only.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

import uvicorn

if __name__ == "__main__":
    print("Starting realtime gateway on http://localhost:8000")
    print("WebSocket endpoint: ws://localhost:8000/ws?token=<jwt>")
    print("API Docs: http://localhost:8000/docs")

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")

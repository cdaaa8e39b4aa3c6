#!/usr/bin/env python3
"""
Quick runner for SeeReal Core
=============================

Usage:
    python -m seereal.run
    # or
    python seereal/run.py
"""

import uvicorn

if __name__ == "__main__":
    print("Starting SeeReal Core...")
    print("API docs: http://localhost:8000/docs")
    print("Health:   http://localhost:8000/health")
    print()

    uvicorn.run(
        "seereal.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )

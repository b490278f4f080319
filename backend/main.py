"""
Haven Safety Backend — FastAPI + httpx
Modular entry point. All logic is split across:
  config.py, models.py, slots.py, data_fetchers.py, event_analysis.py,
  scoring.py, aggregator.py, routes.py
"""

import logging

logging.basicConfig(level=logging.INFO)

from routes import app  # noqa: F401

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

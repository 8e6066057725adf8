"""Запуск шлюза: python main.py или uvicorn main:app --host 127.0.0.1 --port 3000"""
import uvicorn

from gateway.config import HOST, PORT
from gateway.main import app

__all__ = ["app"]


if __name__ == "__main__":
    uvicorn.run(app, host=HOST, port=PORT)

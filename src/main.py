"""
FastAPI Production Application

Main entry point for the Travel Data Store admin API.
"""

from src.config import get_settings
from src.serving.api.main import create_app

settings = get_settings()

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)

import uvicorn

from printmeta.core.config import settings

if __name__ == "__main__":
    # Start Uvicorn programmatically
    print(f"🚀 Starting {settings.PROJECT_NAME} via Custom Launcher...")
    # Reload is enabled for dev experience
    uvicorn.run(
        "printmeta.main:app",
        host="127.0.0.1",
        port=8000,
        reload=settings.ENVIRONMENT == "dev",
        log_level=settings.LOG_LEVEL.lower(),
    )

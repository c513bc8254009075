from api import create_app
from settings import Settings

settings = Settings.from_env()
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)

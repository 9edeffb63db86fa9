import uvicorn

from projectchat.core.config import settings

if __name__ == "__main__":
    uvicorn.run("projectchat.main:app", host=settings.host, port=settings.port)

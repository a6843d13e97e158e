"""Run the API with uvicorn: python -m mabox"""
import uvicorn

from mabox.config import settings


def main():
    uvicorn.run("mabox.main:app", host="0.0.0.0", port=settings.API_PORT)


if __name__ == "__main__":
    main()

"""Entry point for the mosaic generation server."""
import uvicorn

from mosaic_studio.core.settings import settings


def main() -> None:
    url = f"http://localhost:{settings.port}"
    print(f"[+] {settings.app_name} → {url}  (API docs: {url}/docs)")
    uvicorn.run(
        "mosaic_studio.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

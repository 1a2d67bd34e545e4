import os
import sys
import pathlib
import logging
import dotenv
from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware

dotenv.load_dotenv()

logger = logging.getLogger("listing_optimizer")

API_PACKAGE = "listing_optimizer.apis"


def setup_logging() -> None:
    """Configure root logging once; LOG_LEVEL overrides the INFO default."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def import_api_routers() -> APIRouter:
    """Create top level router including all endpoints under listing_optimizer/apis/*."""
    routes = APIRouter(prefix="/api")

    apis_path = pathlib.Path(__file__).parent / "listing_optimizer" / "apis"

    api_names = sorted(
        p.relative_to(apis_path).parent.as_posix()
        for p in apis_path.glob("*/__init__.py")
    )

    for name in api_names:
        logger.info("Importing API: %s", name)
        try:
            api_module = __import__(f"{API_PACKAGE}.{name}", fromlist=[name])
        except ImportError as e:
            logger.error("Error importing API router %s: %s", name, e)
            continue
        api_router = getattr(api_module, "router", None)
        if isinstance(api_router, APIRouter):
            routes.include_router(api_router)
        else:
            logger.error("API module %s has no router", name)

    return routes


def create_app() -> FastAPI:
    """Create the app. This is called by uvicorn with the factory option to construct the app object."""
    setup_logging()
    app = FastAPI(title="Listing Optimizer")
    app.include_router(import_api_routers())

    origins = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for route in app.routes:
        if hasattr(route, "methods"):
            for method in route.methods:
                logger.debug("%s %s", method, route.path)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.environ.get("HOST", "127.0.0.1"), port=int(os.environ.get("PORT", "8000")))

import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import Field

# Load env vars
load_dotenv()

# Make geo_core importable when started as `python backend/server.py`
BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.append(str(BASE_DIR))

from geo_core.config_manager import ConfigManager  # noqa: E402
from geo_core.errors import InvalidRequestError  # noqa: E402
from geo_core.generation.models import CamelModel, GenerateRequest  # noqa: E402
from geo_core.pipeline import GenerationPipeline  # noqa: E402
from geo_core.tuning.store import TuningStore  # noqa: E402
from geo_core.utils.logger import setup_logger  # noqa: E402


# Bridge standard logging (uvicorn) to loguru
class InterceptHandler(logging.Handler):
    def emit(self, record):
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
logging.getLogger("uvicorn").handlers = [InterceptHandler()]
logging.getLogger("uvicorn.access").handlers = [InterceptHandler()]


def load_config() -> ConfigManager:
    try:
        return ConfigManager()
    except FileNotFoundError as e:
        logger.warning(f"{e}. Falling back to default settings.")
        return ConfigManager.from_defaults()


config_manager = load_config()
tuning_store = TuningStore(config_manager.paths.tuning_file)
_pipeline: Optional[GenerationPipeline] = None


def get_pipeline() -> GenerationPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = GenerationPipeline(config_manager, tuning_store=tuning_store)
    return _pipeline


# --- App Configuration ---
app = FastAPI(title="GEO Copy Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Data Models ---
class GroundingRequest(CamelModel):
    product_name: str = ""
    keywords: List[str] = Field(default_factory=list)
    launch_date: Optional[str] = None


# --- Routes ---
@app.post("/generate")
def generate(request: GenerateRequest):
    try:
        response = get_pipeline().run(request)
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.exception(f"Generation error: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to generate content"})

    return response.model_dump(by_alias=True, exclude_none=True)


@app.post("/grounding")
def grounding(request: GroundingRequest):
    if not request.product_name.strip():
        raise HTTPException(status_code=400, detail="Product name is required")

    try:
        signals, sections = get_pipeline().ground(request.product_name, request.keywords, request.launch_date)
    except Exception as e:
        logger.exception(f"Grounding error: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch grounding signals"})

    return {
        "signals": [signal.model_dump(by_alias=True, exclude_none=True) for signal in signals],
        "sections": sections,
    }


@app.get("/health")
async def health_check():
    return {"status": "ok"}


def _describe_tuning(snapshot):
    return {
        "version": snapshot.version,
        "source": snapshot.source,
        "promptName": snapshot.prompt_name,
        "weights": {
            "playbook": snapshot.weights.playbook,
            "grounding": snapshot.weights.grounding,
            "userContent": snapshot.weights.user_content,
        },
        "loadedAt": snapshot.loaded_at.isoformat(),
    }


@app.get("/tuning")
def get_tuning():
    return _describe_tuning(tuning_store.snapshot())


@app.post("/tuning/refresh")
def refresh_tuning():
    snapshot = tuning_store.refresh()
    logger.info("Tuning refreshed via API")
    return {"status": "refreshed", "tuning": _describe_tuning(snapshot)}


if __name__ == "__main__":
    import uvicorn

    setup_logger(config_manager)
    uvicorn.run(app, host="127.0.0.1", port=8000)

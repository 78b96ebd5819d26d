import logging

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse

from app.artifacts import ensure_artifacts
from app.config import Settings, get_settings
from app.errors import ClassifierError, DecodeError, EmptyInputError, PayloadTooLargeError
from app.model import Model
from app.schemas import ErrorResponse, HealthResponse, PredictionItem, PredictResponse
from app.service import InferenceService

logger = logging.getLogger(__name__)


_STATUS_CODES = {
    EmptyInputError: 400,
    DecodeError: 400,
    PayloadTooLargeError: 413,
}


def build_service(settings: Settings) -> InferenceService:
    ensure_artifacts(settings)
    model = Model.load(
        settings.model_path,
        settings.class_list_path,
        input_node=settings.input_node,
        output_node=settings.output_node,
        resolution=settings.node_resolution,
    )
    return InferenceService(model)


def get_service(request: Request) -> InferenceService:
    return request.app.state.service


def create_app(settings: Settings | None = None, service: InferenceService | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)
    app = FastAPI(title="Image Classifier API", version="1.0.0")
    app.state.settings = settings
    app.state.service = service

    @app.on_event("startup")
    def startup():
        if app.state.service is None:
            # ConstructionError propagates: no model, no server.
            app.state.service = build_service(settings)
            logger.info("Model loaded successfully")

    @app.on_event("shutdown")
    def shutdown():
        if app.state.service is not None:
            app.state.service.close()

    @app.exception_handler(ClassifierError)
    async def classifier_error_handler(request: Request, exc: ClassifierError):
        status_code = _STATUS_CODES.get(type(exc), 500)
        if status_code == 500:
            logger.error("Prediction failed: %s", exc)
        return JSONResponse(status_code=status_code, content=ErrorResponse(error=str(exc)).model_dump())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unexpected error handling %s", request.url.path)
        return JSONResponse(status_code=500, content=ErrorResponse(error=str(exc)).model_dump())

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(status="OK")

    @app.post("/predict", response_model=PredictResponse, responses={400: {"model": ErrorResponse}})
    def predict(
        file: UploadFile | None = File(None),
        service: InferenceService = Depends(get_service),
    ):
        if file is None:
            raise EmptyInputError()
        data = file.file.read(settings.body_limit_bytes + 1)
        if len(data) > settings.body_limit_bytes:
            raise PayloadTooLargeError(f"File exceeds the {settings.body_limit_mb} MB limit")

        predictions = service.predict(data)
        return PredictResponse(
            prediction=[
                PredictionItem(class_label=p.class_label, probability=p.probability)
                for p in predictions
            ]
        )

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    app = create_app(settings)
    logger.info("Listening on http://%s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()

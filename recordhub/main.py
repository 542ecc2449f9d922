from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recordhub.api.records import router as records_router
from recordhub.core.config import settings
from recordhub.core.http import install_error_handlers, install_request_logging

app = FastAPI(title=settings.APP_NAME, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_request_logging(app)
install_error_handlers(app)

app.include_router(records_router, prefix="/api/records")


@app.get("/health")
def health():
    return {"status": "ok"}

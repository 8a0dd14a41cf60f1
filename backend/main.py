import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import deps  # noqa: F401  loads .env before routers read settings
from routes.catalog import router as catalog_router
from routes.images import router as images_router
from routes.mockups import router as mockups_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Mockup Engine API", version="1.0.0")

# CORS configuration - allow all origins for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(mockups_router, prefix="/api")
app.include_router(images_router, prefix="/api")
app.include_router(catalog_router, prefix="/api")


@app.get("/api/ping")
async def ping():
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

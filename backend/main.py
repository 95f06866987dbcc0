from __future__ import annotations

import uvicorn

from geotrack.core.settings import get_settings
from geotrack.main import app


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=settings.log_level.lower())

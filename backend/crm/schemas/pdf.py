from pydantic import BaseModel
from typing import Any, Dict, Optional


class GeneratePdfRequest(BaseModel):
    # Untyped: the renderer coerces missing or malformed fields itself
    invoiceData: Optional[Dict[str, Any]] = None

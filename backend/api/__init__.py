"""
LeaseWise API Module
====================
FastAPI routers for the LeaseWise API.
"""

from api.clauses import router as clauses_router
from api.documents import router as documents_router
from api.portfolio import router as portfolio_router

__all__ = ["portfolio_router", "clauses_router", "documents_router"]

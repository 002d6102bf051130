from coursepay.routes.auth import router as auth_router
from coursepay.routes.courses import router as courses_router
from coursepay.routes.discount import router as discount_router
from coursepay.routes.payment import router as payment_router
from coursepay.routes.admin import router as admin_router
from coursepay.routes.mock_gateway import router as mock_gateway_router

__all__ = ["auth_router", "courses_router", "discount_router", "payment_router", "admin_router", "mock_gateway_router"]

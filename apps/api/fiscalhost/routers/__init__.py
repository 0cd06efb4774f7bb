"""API routers."""

from fiscalhost.routers.accounts import router as accounts_router
from fiscalhost.routers.guests import router as guests_router
from fiscalhost.routers.payment_methods import router as payment_methods_router

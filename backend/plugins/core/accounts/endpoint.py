"""Account lifecycle API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from plugins.core.accounts import service as accounts_service
from plugins.core.accounts.models import AccountResetRequest, AccountResetResponse

router = APIRouter()


@router.post(
    "/reset",
    response_model=AccountResetResponse,
    summary="Reset all data of an account",
    description=(
        "Delete every document owned by the account with the given email, "
        "remove it from shared license keys and clear its session fields. "
        "The account itself is kept. The per-collection report is returned "
        "even when some collections failed."
    ),
)
async def reset_account(
    request: AccountResetRequest,
    service: Annotated[
        accounts_service.AccountLifecycleService,
        Depends(accounts_service.get_account_lifecycle_service),
    ],
) -> AccountResetResponse:
    return await service.reset_user_data(request)

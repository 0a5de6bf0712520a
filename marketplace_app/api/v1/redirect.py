import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from marketplace_app.dependencies import get_tracking_resolver, get_click_dispatcher
from marketplace_app.exceptions import InconsistencyError, TrackingCodeNotFound
from marketplace_app.services.client_context import build_click_context
from marketplace_app.services.click_dispatch import ClickDispatcher
from marketplace_app.services.tracking_service import TrackingResolver

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tracking"])


@router.get("/track/{code}")
async def track_click(
    code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    resolver: TrackingResolver = Depends(get_tracking_resolver),
    dispatcher: ClickDispatcher = Depends(get_click_dispatcher),
):
    """
    Redirect a tracking link to the offer's product page.

    Flow:
    1. Resolve code -> (application, product_url), cache first
    2. Capture the click context from the request
    3. Redirect immediately; attribution runs after the response is
       sent, so a failing write never delays or breaks the redirect
    """
    try:
        target = await resolver.resolve(code)
    except TrackingCodeNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tracking link not found"
        )
    except InconsistencyError as e:
        logger.error(f"Cannot redirect tracking code {code!r}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Tracking link is misconfigured"
        )

    click = build_click_context(request, target.application_id)
    background_tasks.add_task(dispatcher.dispatch, click)

    return RedirectResponse(url=target.product_url, status_code=status.HTTP_302_FOUND)

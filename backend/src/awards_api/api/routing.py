"""Route class that meters dataset endpoints."""
from typing import Any, Callable, Coroutine

from fastapi import HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute

from awards_api.api.deps import ApiAccess
from awards_api.errors import AwardsAPIError


class MeteredRoute(APIRoute):
    """
    Writes one usage record per authorized call after the response is built.

    The wrapped handler covers dependency resolution, the endpoint and
    response-model serialization, so the recorded status is the one the
    caller receives. Requests rejected before ``require_domain`` accepted
    them carry no ``ApiAccess`` and are not recorded.
    """

    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        route_handler = super().get_route_handler()

        async def metered_route_handler(request: Request) -> Response:
            try:
                response = await route_handler(request)
            except HTTPException as exc:
                await _record(request, exc.status_code)
                raise
            except AwardsAPIError as exc:
                await _record(request, exc.status_code)
                raise
            except RequestValidationError:
                await _record(request, 422)
                raise
            except Exception:
                # No latency for a crashed call
                await _record(request, 500, timed=False)
                raise

            await _record(request, response.status_code)
            return response

        return metered_route_handler


async def _record(request: Request, status_code: int, timed: bool = True) -> None:
    access = ApiAccess.current(request)
    if access is None:
        return
    await access.record(status_code, access.elapsed_ms() if timed else None)

# app/middleware/db_middleware.py

from starlette.types import ASGIApp, Receive, Scope, Send

from app.utils.database import AsyncSessionLocal


class DBSessionMiddleware:
    """Одна AsyncSession на HTTP-запрос, доступна как request.state.db."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        session = AsyncSessionLocal()
        state["db"] = session
        try:
            await self.app(scope, receive, send)
        finally:
            # незакоммиченные изменения откатываются при закрытии
            await session.close()

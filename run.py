import sys
import uvicorn

from codesage import config

if sys.platform == "win32":
    import asyncio
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

if __name__ == "__main__":
    uvicorn.run(
        "codesage.server:app",
        host=config.HOST,
        port=config.PORT,
        reload=True,
        reload_dirs=["codesage"],
    )

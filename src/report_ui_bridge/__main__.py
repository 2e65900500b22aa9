import asyncio

import uvicorn
from dotenv import load_dotenv
from loguru import logger

from report_ui_bridge.app_config import load_json_config, parse_app_config, resolve_runtime_env
from report_ui_bridge.bootstrap import bootstrap_runtime, shutdown_runtime, start_background_tasks


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    runtime = await bootstrap_runtime(app, env)

    print("report-ui-bridge")
    print(f"Listening: http://{app.host}:{app.port}")
    print(f"UI bridge: {'enabled' if app.enable_ui_bridge else 'disabled'}")
    tool_names = getattr(runtime.tool_host, "tool_names", [])
    if tool_names:
        print("Tools:")
        for name in tool_names:
            print(f"  - {name}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    start_background_tasks(runtime)
    server = uvicorn.Server(uvicorn.Config(runtime.asgi_app, host=app.host, port=app.port, log_level="warning"))
    try:
        await server.serve()
    finally:
        logger.info("Shutting down...")
        await shutdown_runtime(runtime)


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()

# main.py
# Golf course chatbot entry point.
#  - serve: run the FastAPI service under uvicorn
#  - chat : talk to the chat graph from the console
import argparse
import logging
import os

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Golf course chatbot")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    serve.add_argument("--port", type=int, default=int(os.getenv("PORT", "8080")))
    serve.add_argument("--reload", action="store_true")

    sub.add_parser("chat", help="console chat against the same graph")

    args = parser.parse_args()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(asctime)s %(levelname)s %(name)s %(message)s")

    if args.command == "chat":
        from workflow.runner import run_chat_console

        run_chat_console()
        return

    uvicorn.run(
        "api_server:app",
        host=getattr(args, "host", "0.0.0.0"),
        port=getattr(args, "port", 8080),
        reload=getattr(args, "reload", False),
    )


if __name__ == "__main__":
    main()

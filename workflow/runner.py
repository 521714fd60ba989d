from __future__ import annotations

import html
import re
import uuid

from .graph_chat import build_chat_graph, run_turn
from .intents import intent_name

TAG_RE = re.compile(r"<[^>]+>")
BREAK_RE = re.compile(r"<br\s*/?>|</p>|</li>|</div>", re.IGNORECASE)


def html_to_console(fragment: str) -> str:
    text = BREAK_RE.sub("\n", fragment or "")
    text = TAG_RE.sub("", text)
    lines = [line.strip() for line in html.unescape(text).splitlines()]
    return "\n".join(line for line in lines if line)


def run_chat_console() -> None:
    print("Golf Course Chatbot (type 'start' for the quiz, 'exit' to leave the quiz, Ctrl+C to quit)\n")
    graph = build_chat_graph().compile()
    session_id = uuid.uuid4().hex
    messages: list[dict[str, str]] = []

    while True:
        try:
            user_text = input("User: ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not user_text:
            continue
        messages.append({"role": "user", "content": user_text})

        result = run_turn(graph, session_id, messages)
        reply = result["reply"]
        print(f"Assistant [{intent_name(result['intent'])}]:\n{html_to_console(reply.html)}\n")
        messages.append({"role": "assistant", "content": reply.html})

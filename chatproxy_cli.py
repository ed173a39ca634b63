import argparse
import base64
import json
import mimetypes
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

import httpx


DEFAULT_API_BASE = "http://127.0.0.1:8000"


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + path


def file_to_data_url(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime or 'application/octet-stream'};base64,{encoded}"


def build_user_message(question: str, image: Optional[Path] = None) -> Dict[str, Any]:
    if image is None:
        return {"role": "user", "content": question}
    parts: List[Dict[str, Any]] = []
    if question:
        parts.append({"type": "text", "text": question})
    parts.append({"type": "image_url", "image_url": {"url": file_to_data_url(image)}})
    return {"role": "user", "content": parts}


def iter_deltas(lines: Iterable[str]) -> Iterator[str]:
    for line in lines:
        if not line or not line.startswith("data:"):
            continue
        chunk = line[len("data:"):].strip()
        if chunk == "[DONE]":
            break
        try:
            data = json.loads(chunk)
        except ValueError:
            continue
        if not isinstance(data, dict):
            continue
        choices = data.get("choices")
        first = choices[0] if isinstance(choices, list) and choices else {}
        delta_obj = first.get("delta") if isinstance(first, dict) else None
        delta = delta_obj.get("content") if isinstance(delta_obj, dict) else None
        if isinstance(delta, str) and delta:
            yield delta


def run_ask(args: argparse.Namespace) -> int:
    base = args.base_url or DEFAULT_API_BASE
    image = Path(args.image) if args.image else None
    if image is not None and not image.is_file():
        print(f"Image not found: {image}")
        return 1
    payload: Dict[str, Any] = {"messages": [build_user_message(args.question, image)]}
    if args.model:
        payload["model"] = args.model
    with httpx.Client() as client:
        with client.stream("POST", _join_url(base, "/api/chat"), json=payload, timeout=args.timeout) as resp:
            if resp.status_code >= 400:
                resp.read()
                try:
                    body = resp.json()
                except ValueError:
                    body = resp.text
                detail = body.get("error") if isinstance(body, dict) else body
                print(f"Chat failed: HTTP {resp.status_code} {detail or ''}".rstrip())
                return 1
            for delta in iter_deltas(resp.iter_lines()):
                sys.stdout.write(delta)
                sys.stdout.flush()
    sys.stdout.write("\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="chatproxy CLI")
    parser.add_argument("--base-url", default=DEFAULT_API_BASE, help="API base URL")
    subparsers = parser.add_subparsers(dest="command")

    ask = subparsers.add_parser("ask", help="Ask a question and print the streamed answer")
    ask.add_argument("question", help="Question text")
    ask.add_argument("--model", default=None, help="Model identifier (server default when omitted)")
    ask.add_argument("--image", default=None, help="Attach an image file as a data URL")
    ask.add_argument("--timeout", type=float, default=300, help="Request timeout in seconds")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "ask":
        return run_ask(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())

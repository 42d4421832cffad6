import argparse
import asyncio
import json
import logging
import sys

from jarwik.config import settings
from jarwik.sentry import flush as sentry_flush
from jarwik.sentry import init_sentry


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("jarwik.api:build_app", factory=True, host=host, port=port)


async def classify(text: str, use_fallback: bool) -> None:
    from jarwik.services.llm_client import build_llm_client
    from jarwik.services.llm_parser import FallbackClassifier
    from jarwik.services.parser import LightweightParser

    parser = LightweightParser()
    result = parser.classify(text)
    print(json.dumps(result.to_dict(), indent=2, default=str))
    needs_fallback = result.needs_ai or result.confidence <= settings.chat_confidence_threshold
    print(f"\nFallback: {'would run' if needs_fallback else 'not needed'}")

    if use_fallback:
        if not settings.has_llm:
            print("Error: no LLM API key configured")
            sys.exit(1)
        fallback = FallbackClassifier(
            llm=build_llm_client(settings),
            base_parser=parser,
            timeout=settings.fallback_timeout_seconds,
        )
        print("\nFallback classifier:")
        result = await fallback.classify_async(text)
        print(json.dumps(result.to_dict(), indent=2, default=str))


def resolve(text: str, timezone: str | None) -> None:
    from jarwik.services.timezone import TimeResolver

    resolver = TimeResolver(timezone)
    now = resolver.now()
    resolved = resolver.resolve(text, now)
    if resolved is None:
        print(f"Could not resolve '{text}'")
        sys.exit(1)

    print(f"  Resolved: {resolved.isoformat()}")
    print(f"  For user: {resolver.format_for_user(resolved, now)}")
    print(f"  Timezone: {resolver.default_timezone}")


def check_config() -> None:
    print("Jarwik Configuration Check\n")

    checks = [
        ("LLM API Key", settings.has_llm),
        ("OpenAI API Key", settings.has_openai),
        ("Gemini API Key", settings.has_gemini),
        ("Anthropic API Key", settings.has_anthropic),
        ("Google OAuth", settings.has_google),
        ("Twilio", settings.has_twilio),
        ("Sentry DSN", settings.has_sentry),
    ]

    for name, configured in checks:
        status = "OK" if configured else "MISSING"
        symbol = "+" if configured else "-"
        print(f"  [{symbol}] {name}: {status}")

    print(f"\n  Timezone: {settings.user_timezone}")
    print()
    if settings.has_llm:
        print("LLM fallback available. Ready to run.")
    else:
        print("No LLM configured: low-confidence messages use the rule-based parser only.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Jarwik AI Assistant")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=settings.api_host)
    serve_parser.add_argument("--port", type=int, default=settings.api_port)

    classify_parser = subparsers.add_parser("classify", help="Classify a message")
    classify_parser.add_argument("text")
    classify_parser.add_argument(
        "--fallback", action="store_true", help="Also run the LLM classifier"
    )

    resolve_parser = subparsers.add_parser("resolve", help="Resolve a time expression")
    resolve_parser.add_argument("text")
    resolve_parser.add_argument("--timezone", default=None)

    subparsers.add_parser("check", help="Check configuration")

    args = parser.parse_args()

    setup_logging()

    init_sentry(
        dsn=settings.sentry_dsn if settings.has_sentry else None,
        environment=settings.sentry_environment,
    )

    try:
        if args.command == "serve":
            serve(args.host, args.port)
        elif args.command == "classify":
            asyncio.run(classify(args.text, args.fallback))
        elif args.command == "resolve":
            resolve(args.text, args.timezone)
        elif args.command == "check":
            check_config()
        else:
            parser.print_help()
    finally:
        sentry_flush(timeout=2.0)


if __name__ == "__main__":
    main()

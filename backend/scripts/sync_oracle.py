from epicflow.core.context import build_context
from epicflow.core.logging import configure_logging
from epicflow.services.resync import resync_oracle


def main() -> None:
    context = build_context()
    configure_logging(context.settings.log_level)
    db = context.session_factory()
    try:
        counts = resync_oracle(db, context.facts)
    finally:
        db.close()
        context.close()
    print(
        "Oracle sync complete: "
        + ", ".join(f"{count} {name}" for name, count in counts.items())
    )


if __name__ == "__main__":
    main()

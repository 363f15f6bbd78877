"""
Entry point: configure logging, print the banner, run one recognition session.
"""
import logging
import sys

from . import config
from .session import RecognitionSession


def main():
    logging.basicConfig(
        level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("=" * 60)
    print("  Real-Time Face Recognition")
    print("  SSD detector + 68-point landmarks + MobileFaceNet")
    print("=" * 60)
    print(f"Models: {config.MODELS_DIR}")
    print(f"Labels: {config.LABELS_DIR} ({', '.join(config.LABELS)})")
    print("Press 'q' or ESC in the video window to quit.\n")

    session = RecognitionSession()
    if session.setup():
        matcher = session.context.matcher
        print("-" * 60)
        print("✓ System ready!")
        print(f"✓ Gallery: {len(matcher.labels)} identities ({', '.join(matcher.labels)})")
        print(f"✓ Recognition: MobileFaceNet ({matcher.descriptor_size}-dim, distance < {matcher.distance_threshold})")
        print("-" * 60)
    session.run()

    if session.error_message:
        print(f"✗ {session.error_message}")
        sys.exit(1)
    print("Goodbye!")


if __name__ == "__main__":
    main()

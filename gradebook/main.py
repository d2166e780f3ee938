"""
Main entry point for the Gradebook service.

Supports these modes:
  gradebook --portal                       Launch the FastAPI web portal
  gradebook --init-db                      Create database tables
  gradebook --grade COURSE_ID STUDENT_ID   Print one student's grade
  gradebook --export COURSE_ID PATH        Write the course gradebook to XLSX
"""

import argparse
import sys

from gradebook.config import get_config
from gradebook.exceptions import GradebookError
from gradebook.utils.logger import setup_logging, get_logger


def launch_portal(config) -> None:
    """Start the FastAPI web portal (blocks)."""
    import uvicorn
    from gradebook.portal.app import create_app

    app = create_app(config)
    uvicorn.run(
        app,
        host=config.PORTAL_HOST,
        port=config.PORTAL_PORT,
        log_level=config.LOG_LEVEL.lower(),
    )


def main(argv=None) -> int:
    """Parse CLI arguments and run the requested mode."""
    parser = argparse.ArgumentParser(description="Course gradebook and grade calculator")
    parser.add_argument("--portal", action="store_true", help="Launch the web portal")
    parser.add_argument("--init-db", action="store_true", help="Create database tables")
    parser.add_argument(
        "--grade", nargs=2, type=int, metavar=("COURSE_ID", "STUDENT_ID"),
        help="Print one student's grade in a course",
    )
    parser.add_argument(
        "--export", nargs=2, metavar=("COURSE_ID", "PATH"),
        help="Write a course gradebook to an Excel file",
    )
    parser.add_argument("--env", type=str, default=None, help="Path to .env file")
    args = parser.parse_args(argv)
    if args.export:
        try:
            args.export[0] = int(args.export[0])
        except ValueError:
            parser.error(f"--export: invalid int value: '{args.export[0]}'")

    # Load configuration
    config = get_config(env_path=args.env)
    setup_logging(config.LOG_LEVEL)
    logger = get_logger(__name__)

    if not config.validate():
        logger.warning("Configuration has warnings - some features may not work.")

    from gradebook.database import db_manager

    db_manager.init_db()

    try:
        if args.grade:
            course_id, student_id = args.grade
            result = db_manager.calculate_student_grade(student_id, course_id)
            print(f"{result.percentage}% {result.letter_grade}"
                  f"{' (weighted)' if result.is_weighted else ''}")
        elif args.export:
            course_id, path = args.export
            buf = db_manager.export_to_excel(course_id)
            with open(path, "wb") as f:
                f.write(buf.getvalue())
            logger.info("Gradebook for course %d written to %s", course_id, path)
        elif args.portal:
            config.print_summary()
            logger.info(
                "Starting web portal at http://%s:%d",
                config.PORTAL_HOST,
                config.PORTAL_PORT,
            )
            launch_portal(config)
        elif not args.init_db:
            parser.print_help()
    except GradebookError as exc:
        logger.error("%s", exc.message)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

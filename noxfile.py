"""Nox sessions for the chat games bot."""

import nox

nox.options.sessions = ["tests", "lint"]
python_versions = ["3.11", "3.12"]
source_paths = ["chatgames", "tests", "noxfile.py"]


@nox.session(python=python_versions)
def tests(session):
    """Run the test suite with coverage."""
    session.install("-e", ".[dev]")
    session.run(
        "pytest",
        "--cov=chatgames",
        "--cov-report=term-missing",
        "--cov-report=xml:coverage.xml",
        "--cov-fail-under=80",
        "-v",
        *session.posargs,
    )


@nox.session(python=python_versions[0])
def lint(session):
    """Run ruff for linting and formatting."""
    session.install("ruff>=0.1.0")
    session.run("ruff", "check", *source_paths)
    session.run("ruff", "format", "--check", *source_paths)


@nox.session(python=python_versions[0])
def format_code(session):
    session.install("ruff>=0.1.0")
    session.run("ruff", "format", *source_paths)
    session.run("ruff", "check", "--fix", *source_paths)


@nox.session(python=python_versions[0])
def games(session):
    """Run only the game session tests, e.g. ``nox -s games -- -k jackpot``."""
    session.install("-e", ".[dev]")
    session.run(
        "pytest", "-v", "tests/test_raffle.py", "tests/test_decoy.py", *session.posargs
    )

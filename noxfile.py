"""Nox sessions for the BL654 AT interface: tests, lint and packaging."""

import nox

nox.options.sessions = ["lint", "tests"]
nox.options.reuse_existing_virtualenvs = True

PACKAGE = "bl654"
FLAKE8_ARGS = ["--max-line-length=120", PACKAGE, "tests"]


def install_dev(session):
    session.install("-e", ".[dev]")


@nox.session(python=["3.8", "3.9", "3.10", "3.11", "3.12"])
def tests(session):
    """Run the whole suite on every supported interpreter."""
    install_dev(session)
    session.run("pytest", *session.posargs)


@nox.session(python="3.10")
def unit(session):
    """Unit tests only, stopping at the first failure."""
    install_dev(session)
    session.run("pytest", "-m", "not integration", "-x", "--tb=short", *session.posargs)


@nox.session(python="3.10")
def integration(session):
    """Scripted-module flows through BL654Interface."""
    install_dev(session)
    session.run("pytest", "-m", "integration", "-v", *session.posargs)


@nox.session(python="3.10")
def lint(session):
    install_dev(session)
    session.run("flake8", *FLAKE8_ARGS)
    session.run("mypy", PACKAGE)


@nox.session(python="3.10")
def ci(session):
    """Coverage-gated test run followed by lint."""
    install_dev(session)
    session.run(
        "pytest",
        f"--cov={PACKAGE}",
        "--cov-report=term-missing",
        "--cov-report=xml",
        "--cov-fail-under=80",
    )
    session.run("flake8", *FLAKE8_ARGS)
    session.run("mypy", PACKAGE)


@nox.session(python="3.10")
def build(session):
    """Build sdist and wheel and check their metadata."""
    session.install("build", "twine")
    session.run("python", "-m", "build")
    session.run("twine", "check", "dist/*")

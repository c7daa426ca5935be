#!/usr/bin/env python3
"""Validate local Slotwise environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.repository.kv_store import KeyValueRepository
from backend.repository.session_log import SessionLogRepository
from backend.services.forecast_service import STATUS_READY, RushForecastService
from backend.services.registry_service import SlotRegistryService
from backend.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="slotwise-env-")

    # CHECK 1 — Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2 — Required packages importable with versions
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("numpy", "numpy"),
        ("pandas", "pandas"),
        ("requests", "requests"),
        ("streamlit", "streamlit"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    from importlib.metadata import PackageNotFoundError, version

    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        base_settings = get_settings()
        validation_settings = replace(
            base_settings,
            database_path=Path(temp_dir) / "slotwise_validation.db",
            session_log_path=str(Path(temp_dir) / "slotwise_sessions.db"),
        )
        repository = KeyValueRepository(validation_settings)
        registry_service = SlotRegistryService(repository=repository, settings=validation_settings)

        # CHECK 3 — Key-value store initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Key-value store initialization", True)
        except Exception as exc:
            ok, line = _print_result("Key-value store initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4 — Default registry synthesis
        total_slots = validation_settings.default_total_slots
        try:
            registry = registry_service.load()
            if registry.total != total_slots or len(registry.slots) != total_slots:
                raise RuntimeError(f"expected {total_slots} slots, got {len(registry.slots)}")
            ok, line = _print_result("Default registry", True, f": {registry.total} slots")
        except Exception as exc:
            ok, line = _print_result("Default registry", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5 — Session log initialization and synthetic seeding
        session_log = SessionLogRepository(validation_settings)
        try:
            session_log.initialize_database()
            seeded = session_log.seed_synthetic_sessions(total_slots, registry_service.now())
            if seeded <= 0:
                raise RuntimeError("no synthetic sessions were written")
            ok, line = _print_result("Session log seeding", True, f": {seeded} sessions")
        except Exception as exc:
            ok, line = _print_result("Session log seeding", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 6 — Rush forecast
        forecast_service = RushForecastService(session_log=session_log, settings=validation_settings)
        try:
            outcome = forecast_service.get_forecast(total_slots, timeout=30)
            if outcome.status != STATUS_READY or outcome.forecast is None:
                raise RuntimeError(f"forecast status {outcome.status}: {outcome.detail}")
            ok, line = _print_result(
                "Rush forecast",
                True,
                f": busiest={outcome.forecast.busy_label} quietest={outcome.forecast.empty_label}",
            )
        except Exception as exc:
            ok, line = _print_result("Rush forecast", False, str(exc))
        finally:
            forecast_service.shutdown()
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Slotwise Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())

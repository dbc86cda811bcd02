from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

from pyspark.sql import SparkSession

if TYPE_CHECKING:
    from .config.settings import Settings

DEFAULT_SHUFFLE_PARTITIONS = 8


def detect_environment() -> str:
    """Detect a likely runtime environment: databricks, fabric, or local.

    Heuristics only; callers should not rely on this for security decisions.
    """
    if os.environ.get("DATABRICKS_RUNTIME_VERSION") or os.environ.get("DATABRICKS_CLUSTER_ID"):
        return "databricks"
    if os.environ.get("FABRIC_ENVIRONMENT") or os.environ.get("MS_FABRIC"):
        return "fabric"
    return "local"


def _has_java() -> bool:
    """Return True when a Java runtime is reachable via JAVA_HOME or PATH."""
    java_home = os.environ.get("JAVA_HOME")
    if java_home and (Path(java_home) / "bin" / "java").exists():
        return True
    return shutil.which("java") is not None


def create_session(
    app_name: str = "spark-canopy",
    *,
    master: Optional[str] = None,
    shuffle_partitions: int = DEFAULT_SHUFFLE_PARTITIONS,
    extra_configs: Optional[Dict[str, str]] = None,
) -> SparkSession:
    """Create a SparkSession suited to canopy fitting.

    - Uses `local[2]` when no master is provided and not on Databricks or Fabric.
    - Pins executor and driver Python to the current interpreter unless overridden.
    - Accepts `extra_configs` for environment-specific settings.
    """
    env = detect_environment()

    python_exec = os.environ.get("PYSPARK_PYTHON", sys.executable)
    driver_python = os.environ.get("PYSPARK_DRIVER_PYTHON", python_exec)

    active = SparkSession.getActiveSession()
    if active is not None:
        try:
            current_exec = active.sparkContext.pythonExec
        except Exception:
            current_exec = None
        if current_exec and os.path.realpath(current_exec) != os.path.realpath(python_exec):
            active.stop()

    builder = SparkSession.builder.appName(app_name)
    if master:
        builder = builder.master(master)
    elif env == "local":
        builder = builder.master("local[2]")

    builder = builder.config("spark.pyspark.python", python_exec).config(
        "spark.pyspark.driver.python", driver_python
    )

    # The merge tree shuffles only small center matrices.
    builder = builder.config("spark.sql.shuffle.partitions", str(shuffle_partitions))

    if extra_configs:
        for k, v in extra_configs.items():
            builder = builder.config(k, v)

    return builder.getOrCreate()


def session_from_settings(
    settings: Optional["Settings"] = None,
    *,
    extra_configs: Optional[Dict[str, str]] = None,
) -> SparkSession:
    """Create a session from the ``spark`` settings section."""
    if settings is None:
        from .config.settings import get_settings

        settings = get_settings()
    return create_session(
        settings.spark.app_name,
        master=settings.spark.master,
        shuffle_partitions=settings.spark.shuffle_partitions,
        extra_configs=extra_configs,
    )

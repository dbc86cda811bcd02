import os
from pathlib import Path

import pytest

_SRC_PATH = str(Path(__file__).resolve().parents[1] / "src")


@pytest.fixture(scope="session")
def spark():
    # Lazy import to avoid overhead when not used.
    from spark_canopy.spark import _has_java, create_session

    if not _has_java():
        pytest.skip("A Java runtime is required for Spark tests")

    # Python workers must be able to import the package when running in-place.
    existing = os.environ.get("PYTHONPATH")
    if not existing or _SRC_PATH not in existing.split(os.pathsep):
        os.environ["PYTHONPATH"] = os.pathsep.join(p for p in (_SRC_PATH, existing) if p)

    # Ensure local networking is used for Spark in constrained environments.
    os.environ.setdefault("SPARK_LOCAL_IP", "127.0.0.1")
    os.environ.setdefault("SPARK_LOCAL_HOSTNAME", "localhost")

    spark = create_session(
        app_name="spark-canopy-tests",
        master="local[2]",
        shuffle_partitions=2,
        extra_configs={
            # Bind to localhost to avoid network/port issues in CI or sandboxes
            "spark.driver.bindAddress": "127.0.0.1",
            "spark.driver.host": "localhost",
            # Disable UI to avoid binding extra ports
            "spark.ui.enabled": "false",
            # Be resilient to port contention
            "spark.port.maxRetries": "64",
        },
    )
    yield spark
    spark.stop()


@pytest.fixture
def six_points():
    """Three well separated pairs of 2-D points."""
    return [
        [0.0, 0.0],
        [0.0, 1.0],
        [10.0, 10.0],
        [10.0, 11.0],
        [20.0, 0.0],
        [20.0, 1.0],
    ]

import pytest

from wealth_dash.database import SQLiteRepository


@pytest.fixture
def repository(tmp_path):
    repo = SQLiteRepository(tmp_path / "test.db")
    repo.initialise_schema()
    yield repo
    repo.close()

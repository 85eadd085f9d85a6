import io
from pathlib import Path
import zipfile

import pytest

from modforge.archive import ArchiveError, build_zip, load_module_zip, write_artifacts, write_zip
from modforge.state import GenerationStatus

CONFIG_XML = (
    "<module><displayName><![CDATA[Best Sellers]]></displayName>"
    "<description><![CDATA[Shows best sellers]]></description></module>"
)


def test_build_zip_contains_every_artifact() -> None:
    data = build_zip({"Best/Best.php": "<?php", "Best/config.xml": CONFIG_XML})
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert sorted(archive.namelist()) == ["Best/Best.php", "Best/config.xml"]
        assert archive.read("Best/Best.php") == b"<?php"


def test_build_zip_requires_files() -> None:
    with pytest.raises(ArchiveError, match="No files"):
        build_zip({})


@pytest.mark.parametrize("path", ["../evil.php", "/etc/passwd", "C:/x.php", ""])
def test_unsafe_paths_are_rejected(tmp_path: Path, path: str) -> None:
    with pytest.raises(ArchiveError):
        write_artifacts({path: "x"}, tmp_path)
    with pytest.raises(ArchiveError):
        build_zip({path: "x"})


def test_write_artifacts_creates_folders(tmp_path: Path) -> None:
    written = write_artifacts({"Best/Best.php": "<?php"}, tmp_path / "out")
    assert written == [(tmp_path / "out" / "Best" / "Best.php").resolve()]
    assert written[0].read_text(encoding="utf-8") == "<?php"


def test_load_module_zip_reads_config_metadata(tmp_path: Path) -> None:
    zip_path = write_zip(
        {"Best/Best.php": "<?php", "Best/config.xml": CONFIG_XML}, tmp_path / "best.zip"
    )
    module = load_module_zip(zip_path)
    assert module.name == "Best Sellers"
    assert module.description == "Shows best sellers"
    assert module.state.status is GenerationStatus.COMPLETED
    assert module.state.completion_message == "Successfully imported module from best.zip."
    assert module.state.artifacts["Best/Best.php"] == "<?php"


def test_load_module_zip_without_config_uses_file_name(tmp_path: Path) -> None:
    zip_path = write_zip({"Plain/Plain.php": "<?php"}, tmp_path / "plain.zip")
    module = load_module_zip(zip_path)
    assert module.name == "plain"
    assert module.description == "Module uploaded from plain.zip"


def test_load_module_zip_rejects_non_zip(tmp_path: Path) -> None:
    path = tmp_path / "broken.zip"
    path.write_text("not a zip", encoding="utf-8")
    with pytest.raises(ArchiveError):
        load_module_zip(path)


def test_load_module_zip_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ArchiveError, match="Cannot read module archive"):
        load_module_zip(tmp_path / "nope.zip")

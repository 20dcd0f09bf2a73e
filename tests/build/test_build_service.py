"""
End-to-end tests of the collect → execute → render → publish pipeline.
"""

from __future__ import annotations

import os

import pytest

from nbdocs.models.build import BuildStage, StageStatus
from nbdocs.services.build_service import BuildService
from nbdocs.services.errors import CellExecutionError, MissingSourceError


def _service(build_config, *names, **updates):
    config = build_config.model_copy(update={"documents": list(names), **updates})
    return BuildService(config)


def _transient_paths(target):
    return [target.executed, target.rendered, target.assets_dir]


def test_build_publishes_markdown(notebooks, build_config) -> None:
    notebooks.write("intro", notebooks.markdown("# Intro"), notebooks.code("print(6 * 7)"))
    service = _service(build_config, "intro")

    result = service.build_document("intro")

    published = build_config.publish_dir / "intro.md"
    assert result.ok
    assert result.published.markdown_path == published
    assert [stage.stage for stage in result.stages] == [
        BuildStage.COLLECT,
        BuildStage.EXECUTE,
        BuildStage.RENDER,
        BuildStage.PUBLISH,
    ]
    text = published.read_text(encoding="utf-8")
    assert "# Intro" in text
    assert "42" in text


def test_build_then_clean_leaves_no_transient_artifacts(notebooks, build_config) -> None:
    notebooks.write(
        "plots",
        notebooks.code("import matplotlib.pyplot as plt\nplt.plot([3, 1, 2]);"),
    )
    service = _service(build_config, "plots")
    service.build_document("plots")
    target = service.target("plots")
    assert all(path.exists() for path in _transient_paths(target))

    service.clean(["plots"])

    assert not any(path.exists() for path in _transient_paths(target))
    assert target.published.exists()
    assert any(target.published_assets_dir.iterdir())

    # Cleaning again is not an error
    assert service.clean(["plots"]) == []


def test_rebuilding_unchanged_source_gives_identical_markdown(notebooks, build_config) -> None:
    notebooks.write(
        "stable",
        notebooks.markdown("# Stable"),
        notebooks.code("import random\nprint(random.randint(0, 10**6))"),
        notebooks.code("import matplotlib.pyplot as plt\nplt.plot([1, 2]);"),
    )
    service = _service(build_config, "stable")

    service.build_document("stable")
    first = (build_config.publish_dir / "stable.md").read_bytes()
    service.build_document("stable")
    second = (build_config.publish_dir / "stable.md").read_bytes()

    assert first == second


def test_failing_cell_does_not_touch_published_document(notebooks, build_config) -> None:
    notebooks.write("fragile", notebooks.code("print('first version')"))
    service = _service(build_config, "fragile")
    service.build_document("fragile")
    published = build_config.publish_dir / "fragile.md"
    before = published.read_bytes()

    notebooks.write("fragile", notebooks.code("raise RuntimeError('broken edit')"))
    with pytest.raises(CellExecutionError) as excinfo:
        service.build_document("fragile")

    assert excinfo.value.cell_index == 0
    assert excinfo.value.stage == BuildStage.EXECUTE
    assert published.read_bytes() == before
    assert not service.target("fragile").executed.exists()


def test_failing_first_build_writes_no_markdown(notebooks, build_config) -> None:
    notebooks.write("broken", notebooks.code("1 / 0"))
    service = _service(build_config, "broken")

    with pytest.raises(CellExecutionError) as excinfo:
        service.build_document("broken")

    assert excinfo.value.cell_index == 0
    assert not (build_config.publish_dir / "broken.md").exists()
    assert not (build_config.output_dir / "broken.md").exists()


def test_missing_source_raises(build_config) -> None:
    service = _service(build_config, "ghost")

    with pytest.raises(MissingSourceError) as excinfo:
        service.build_document("ghost")

    assert excinfo.value.document == "ghost"
    assert excinfo.value.stage == BuildStage.COLLECT


def test_build_all_continues_after_failures(notebooks, build_config) -> None:
    notebooks.write("good", notebooks.code("print('ok')"))
    notebooks.write("bad", notebooks.code("undefined_name"))
    service = _service(build_config, "bad", "ghost", "good")

    report = service.build_all()

    assert [r.name for r in report.results] == ["bad", "ghost", "good"]
    assert report.exit_code == 1
    assert [r.name for r in report.failed] == ["bad", "ghost"]

    bad, ghost, good = report.results
    assert bad.failed_stage == BuildStage.EXECUTE
    assert bad.error_type == "CellExecutionError"
    assert "NameError" in bad.error_message
    assert ghost.failed_stage == BuildStage.COLLECT
    assert ghost.error_type == "MissingSourceError"
    assert good.ok
    assert (build_config.publish_dir / "good.md").exists()


def test_build_all_succeeds_with_zero_exit_code(notebooks, build_config) -> None:
    notebooks.write("one", notebooks.markdown("# One"))
    notebooks.write("two", notebooks.code("2"))
    service = _service(build_config, "one", "two")

    report = service.build_all()

    assert report.ok
    assert report.exit_code == 0


def test_markdown_only_document_publishes_without_assets(notebooks, build_config) -> None:
    notebooks.write("prose", notebooks.markdown("# Prose\n\nJust words."))
    service = _service(build_config, "prose")

    result = service.build_document("prose")

    assert result.published.assets_dir is None
    assert not (build_config.publish_dir / "prose_files").exists()
    assert "Just words." in (build_config.publish_dir / "prose.md").read_text(encoding="utf-8")


def test_clean_all_removes_every_artifact(notebooks, build_config) -> None:
    notebooks.write("a", notebooks.code("import matplotlib.pyplot as plt\nplt.plot([1]);"))
    notebooks.write("b", notebooks.markdown("# B"))
    service = _service(build_config, "a", "b")
    service.build_all()

    service.clean_all()

    for target in service.targets():
        for path in (*_transient_paths(target), target.published, target.published_assets_dir):
            assert not path.exists()
        assert target.source.exists()


def test_documents_are_discovered_when_none_declared(notebooks, build_config) -> None:
    notebooks.write("beta", notebooks.markdown("# Beta"))
    notebooks.write("alpha", notebooks.markdown("# Alpha"))
    service = _service(build_config)

    report = service.build_all()

    assert [r.name for r in report.results] == ["alpha", "beta"]
    assert service.declared_names() == ["alpha", "beta"]


def test_incremental_build_skips_up_to_date_steps(notebooks, build_config) -> None:
    source = notebooks.write("cached", notebooks.code("print('hi')"))
    service = _service(build_config, "cached", incremental=True)
    service.build_document("cached")

    second = service.build_document("cached")
    assert [s.status for s in second.stages[1:]] == [StageStatus.SKIPPED] * 3
    assert second.published.markdown_path == build_config.publish_dir / "cached.md"

    # A newer source invalidates every downstream step
    future = source.stat().st_mtime + 60
    os.utime(source, (future, future))
    third = service.build_document("cached")
    assert [s.status for s in third.stages[1:]] == [StageStatus.SUCCESS] * 3


def test_rendering_into_publish_dir(notebooks, build_config) -> None:
    notebooks.write("inplace", notebooks.code("print('direct')"))
    service = _service(build_config, "inplace", output_dir=build_config.publish_dir)

    result = service.build_document("inplace")

    assert result.published.markdown_path == build_config.publish_dir / "inplace.md"
    service.clean(["inplace"])
    assert (build_config.publish_dir / "inplace.md").exists()
    assert not (build_config.publish_dir / "inplace.output.ipynb").exists()


def test_sys_exit_fails_only_its_own_document(notebooks, build_config) -> None:
    notebooks.write("a_exits", notebooks.code("import sys\nsys.exit()"))
    notebooks.write("b_fine", notebooks.code("print('still built')"))
    service = _service(build_config, "a_exits", "b_fine")

    report = service.build_all()

    exits, fine = report.results
    assert report.exit_code == 1
    assert exits.failed_stage == BuildStage.EXECUTE
    assert "SystemExit" in exits.error_message
    assert fine.ok
    assert (build_config.publish_dir / "b_fine.md").exists()


def test_documents_do_not_see_each_others_process_state(notebooks, build_config) -> None:
    notebooks.write("first", notebooks.code("import numpy as np\nnp.set_printoptions(precision=1)"))
    notebooks.write("second", notebooks.code("import numpy as np\nprint(np.array([1.23456]))"))

    _service(build_config, "second").build_all()
    alone = (build_config.publish_dir / "second.md").read_bytes()
    _service(build_config, "first", "second").build_all()
    after_first = (build_config.publish_dir / "second.md").read_bytes()

    assert alone == after_first
    assert b"[1.23456]" in after_first

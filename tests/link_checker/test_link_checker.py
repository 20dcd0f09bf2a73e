from __future__ import annotations

from nbdocs.services.link_checker import check_file, check_links, is_relative_link, iter_link_targets


def test_is_relative_link() -> None:
    assert is_relative_link("tutorial_files/tutorial_3_0.png")
    assert is_relative_link("../other.md")
    assert not is_relative_link("https://tskit.dev")
    assert not is_relative_link("mailto:someone@example.org")
    assert not is_relative_link("#section")
    assert not is_relative_link("   ")


def test_check_file_reports_only_missing_relative_targets(tmp_path) -> None:
    (tmp_path / "doc_files").mkdir()
    (tmp_path / "doc_files" / "doc_1_0.png").write_bytes(b"png")
    (tmp_path / "other.md").write_text("# Other\n", encoding="utf-8")
    md = tmp_path / "doc.md"
    md.write_text(
        "![png](doc_files/doc_1_0.png)\n"
        "![png](doc_files/doc_2_0.png)\n"
        "[other](other.md#intro)\n"
        '[titled](other.md "Other page")\n'
        "[web](https://example.org/x.md)\n"
        "[anchor](#top)\n",
        encoding="utf-8",
    )

    broken = check_file(md)

    assert [link.target for link in broken] == ["doc_files/doc_2_0.png"]
    assert broken[0].document == md


def test_check_links_walks_publish_dir(tmp_path) -> None:
    (tmp_path / "a.md").write_text("[b](b.md)\n", encoding="utf-8")
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "c.md").write_text("[a](../a.md) [gone](gone.md)\n", encoding="utf-8")

    broken = check_links(tmp_path)

    assert [(link.document.name, link.target) for link in broken] == [
        ("a.md", "b.md"),
        ("c.md", "gone.md"),
    ]


def test_missing_publish_dir_has_no_broken_links(tmp_path) -> None:
    assert check_links(tmp_path / "absent") == []


def test_iter_link_targets_drops_titles_and_angle_brackets() -> None:
    text = (
        '![fig](doc_files/doc_1_0.png "Figure 1")\n'
        "[notes](<notes.md> 'Notes')\n"
        "[plain](plain.md)\n"
    )

    assert list(iter_link_targets(text)) == ["doc_files/doc_1_0.png", "notes.md", "plain.md"]


def test_percent_encoded_paths_are_decoded(tmp_path) -> None:
    (tmp_path / "my notes.md").write_text("# Notes\n", encoding="utf-8")
    md = tmp_path / "index.md"
    md.write_text("[notes](my%20notes.md)\n", encoding="utf-8")

    assert check_file(md) == []

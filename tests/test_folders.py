from __future__ import annotations

from mailcheck.services.mail.folders import build_mailbox_tree, flatten_folders
from mailcheck.services.mail.types import MailboxNode


def test_flatten_lists_parents_before_children() -> None:
    boxes = {
        "A": MailboxNode(delimiter="/"),
        "B": MailboxNode(delimiter="/"),
        "C": MailboxNode(delimiter="/", children={"D": MailboxNode(delimiter="/")}),
    }

    folders = flatten_folders(boxes)

    assert [f.name for f in folders] == ["A", "B", "C", "C/D"]
    assert folders[2].children == ["C/D"]
    assert folders[3].children == []


def test_flatten_empty_tree() -> None:
    assert flatten_folders({}) == []


def test_build_tree_from_listing_and_flatten_deep_hierarchy() -> None:
    listing = [
        ("INBOX", "."),
        ("Archive", "."),
        ("Archive.2025", "."),
        ("Archive.2025.Q1", "."),
        ("Sent", "."),
    ]

    folders = flatten_folders(build_mailbox_tree(listing))

    assert [f.name for f in folders] == [
        "INBOX",
        "Archive",
        "Archive.2025",
        "Archive.2025.Q1",
        "Sent",
    ]
    archive = folders[1]
    assert archive.delimiter == "."
    assert archive.children == ["Archive.2025"]


def test_build_tree_creates_unlisted_parents() -> None:
    tree = build_mailbox_tree([("Projects/Alpha", "/")])
    assert list(tree) == ["Projects"]
    assert list(tree["Projects"].children) == ["Alpha"]


def test_flat_namespace_without_delimiter() -> None:
    folders = flatten_folders(build_mailbox_tree([("INBOX", None)]))
    assert len(folders) == 1
    assert folders[0].name == "INBOX"
    assert folders[0].delimiter is None

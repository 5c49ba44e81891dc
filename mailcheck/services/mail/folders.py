from __future__ import annotations

from collections.abc import Iterable, Mapping

from mailcheck.services.mail.types import FolderNode, MailboxNode


def flatten_folders(boxes: Mapping[str, MailboxNode], prefix: str = "") -> list[FolderNode]:
    """Flatten a mailbox hierarchy depth-first, parents before their children.

    ``{A, B, C{D}}`` with delimiter ``/`` becomes ``[A, B, C, C/D]``.
    """
    folders: list[FolderNode] = []
    for name, node in boxes.items():
        full_name = prefix + name
        child_prefix = full_name + (node.delimiter or "")
        folders.append(
            FolderNode(
                name=full_name,
                delimiter=node.delimiter,
                children=[child_prefix + child for child in node.children],
            )
        )
        if node.children:
            folders.extend(flatten_folders(node.children, child_prefix))
    return folders


def build_mailbox_tree(listing: Iterable[tuple[str, str | None]]) -> dict[str, MailboxNode]:
    """Nest a flat ``LIST`` response of ``(name, delimiter)`` pairs by delimiter.

    Intermediate levels the server did not list on their own are created with the
    delimiter of the entry that implied them.
    """
    root: dict[str, MailboxNode] = {}
    for name, delimiter in listing:
        parts = name.split(delimiter) if delimiter else [name]
        level = root
        for part in parts:
            node = level.get(part)
            if node is None:
                node = MailboxNode(delimiter=delimiter)
                level[part] = node
            level = node.children
    return root

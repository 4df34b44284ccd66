from pathlib import Path

import pytest

from photovault.core.activity_log import LogAction
from photovault.core.errors import Conflict, InvalidInput, NotFound
from photovault.db.repositories import ImageRepo


def test_add_vault_records_and_logs(registry, vault_root, activity):
    vault = registry.add_vault(vault_root)

    assert vault.root_path == str(vault_root.resolve())
    assert vault.display_name == vault_root.name
    assert vault.visible is True
    assert activity.entries(vault_root)[0].action is LogAction.VAULT_ADDED


def test_add_vault_validation(registry, tmp_path):
    with pytest.raises(NotFound):
        registry.add_vault(tmp_path / "missing")

    a_file = tmp_path / "file.txt"
    a_file.write_text("x")
    with pytest.raises(InvalidInput):
        registry.add_vault(a_file)

    registry.add_vault(tmp_path)
    with pytest.raises(Conflict):
        registry.add_vault(str(tmp_path) + "/")


def test_vault_order_follows_registration(registry, tmp_path):
    for name in ("b", "a", "c"):
        (tmp_path / name).mkdir()
        registry.add_vault(tmp_path / name)

    vaults = registry.list_vaults()
    assert [v.display_name for v in vaults] == ["b", "a", "c"]
    assert [v.position for v in vaults] == [1, 2, 3]


def test_update_vault(registry, vault):
    updated = registry.update_vault(vault.id, display_name="  Photos ", visible=False, position=7)

    assert (updated.display_name, updated.visible, updated.position) == ("Photos", False, 7)
    with pytest.raises(InvalidInput):
        registry.update_vault(vault.id, display_name="  ")
    with pytest.raises(NotFound):
        registry.update_vault(999, visible=True)


def test_remove_vault_purges_catalog_and_thumbnails(dbm, registry, reconciler, vault, write_file, thumbs):
    root = Path(vault.root_path)
    write_file(root / "Travel" / "a.jpg")
    reconciler.sync(vault.id)
    with dbm.session() as s:
        img = ImageRepo().list_all(s)[0]
        img.thumbnail_ref = "/thumbs/1.jpg"

    registry.remove_vault(vault.id)

    assert registry.list_vaults() == []
    with dbm.session() as s:
        assert ImageRepo().list_all(s) == []
    assert thumbs.removed == ["/thumbs/1.jpg"]
    assert (root / "Travel" / "a.jpg").exists()


def test_fallback_root_order(dbm, registry, tmp_path):
    with dbm.session() as s:
        with pytest.raises(NotFound):
            registry.fallback_root(s, None)

    registry.update_settings(vault_folder=str(tmp_path / "legacy"))
    with dbm.session() as s:
        assert registry.fallback_root(s, None) == (tmp_path / "legacy").resolve()

    (tmp_path / "hidden").mkdir()
    (tmp_path / "shown").mkdir()
    hidden = registry.add_vault(tmp_path / "hidden")
    registry.update_vault(hidden.id, visible=False)
    shown = registry.add_vault(tmp_path / "shown")
    with dbm.session() as s:
        assert registry.fallback_root(s, None) == Path(shown.root_path)
        assert registry.fallback_root(s, hidden.id) == Path(hidden.root_path)
        assert registry.extra_roots(s) == [(tmp_path / "legacy").resolve()]


def test_settings_defaults_and_updates(registry):
    settings = registry.settings()
    assert settings.organize_action == "move"
    assert settings.default_thumbnail_size == 150

    updated = registry.update_settings(organize_action="copy", hide_assigned=True)
    assert updated.organize_action == "copy"
    assert registry.settings().hide_assigned is True


def test_settings_reject_unknown_and_invalid(registry):
    with pytest.raises(InvalidInput):
        registry.update_settings(colour="blue")
    with pytest.raises(InvalidInput):
        registry.update_settings(organize_action="shred")
    assert registry.settings().organize_action == "move"

import json

from usage_metrics.client.identity import (
    InstallIdData,
    default_dir,
    generate_install_id,
    load_json_file,
    load_or_create_install_id,
    store_json_file,
)


def test_install_id_is_created_and_persisted(install_id_path):
    install_id = load_or_create_install_id("app1", install_id_path)

    assert install_id
    stored = json.loads(install_id_path.read_text(encoding="utf-8"))
    assert stored["installId"] == install_id
    assert stored["idCreatedTimestamp"] > 0


def test_install_id_is_stable_across_loads(install_id_path):
    first = load_or_create_install_id("app1", install_id_path)
    second = load_or_create_install_id("app1", install_id_path)

    assert first == second


def test_existing_install_id_is_reused(install_id_path):
    store_json_file(install_id_path, {"installId": "existing", "idCreatedTimestamp": 1})

    assert load_or_create_install_id("app1", install_id_path) == "existing"


def test_corrupt_file_is_replaced(install_id_path):
    install_id_path.parent.mkdir(parents=True)
    install_id_path.write_text("{not json", encoding="utf-8")

    install_id = load_or_create_install_id("app1", install_id_path)

    assert install_id
    assert load_json_file(install_id_path)["installId"] == install_id


def test_empty_install_id_is_replaced(install_id_path):
    store_json_file(install_id_path, {"installId": ""})

    install_id = load_or_create_install_id("app1", install_id_path)

    assert install_id != ""


def test_unwritable_location_still_returns_id(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")

    install_id = load_or_create_install_id("app1", blocker / "id.json")

    assert install_id


def test_default_dir_is_per_application(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))

    assert default_dir("app1") == tmp_path / ".config" / "usage-metrics" / "app1"
    assert default_dir("app1") != default_dir("app2")


def test_generated_ids_are_random():
    ids = {generate_install_id() for _ in range(50)}

    assert len(ids) == 50


def test_install_id_data_maps_wire_keys():
    data = InstallIdData.from_json({"installId": "abc", "idCreatedTimestamp": 12})

    assert data.install_id == "abc"
    assert data.created_timestamp == 12
    assert data.to_json() == {"installId": "abc", "idCreatedTimestamp": 12}

from fieldcrypt_core.record import Record
from fieldcrypt_core.schema import Schema
from fieldcrypt_core.utils import canonical_json, dump_document, load_document


def test_canonical_json_is_key_order_independent():
    assert canonical_json({"b": 1, "a": [1, {"d": 2, "c": 3}]}) == canonical_json({"a": [1, {"c": 3, "d": 2}], "b": 1})
    assert canonical_json({"name": "ünï"}) == '{"name":"ünï"}'.encode("utf-8")


def test_canonical_json_serializes_records_as_objects():
    rec = Record(Schema(), {"x": 1})
    assert canonical_json({"r": rec}) == b'{"r":{"x":1}}'


def test_document_storage_form_keeps_bytes():
    doc = {"_id": "1", "aggregated_cipher": b"\x00\xffabc", "separated_cipher_map": {"ssn": b"\x01"}, "n": 2}
    text = dump_document(doc)
    assert "$binary" in text
    assert load_document(text) == doc


def test_logger_emits_one_json_object_per_line(capsys):
    import json, logging
    from fieldcrypt_core.logger import get_logger

    log = get_logger("fieldcrypt.test.json_lines", level=logging.INFO)
    log.info('field "ssn" restored')

    line = capsys.readouterr().out.strip().splitlines()[-1]
    entry = json.loads(line)
    assert entry["level"] == "INFO"
    assert entry["name"] == "fieldcrypt.test.json_lines"
    assert entry["msg"] == 'field "ssn" restored'
    assert entry["ts"].endswith("Z")

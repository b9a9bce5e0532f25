from __future__ import annotations

import json

import pytest

from archbundle.assemble.assembler import AssembleOptions, assemble
from archbundle.errors import ValidationError
from archbundle.models import MANIFEST_FILE, BundleManifest, Platform, SliceDescriptor
from archbundle.validate.validator import validate, validate_bundle

ALLOWED = ["arm64", "x86_64"]


@pytest.fixture
def bundle(tmp_path, artifact_factory):
    destination = tmp_path / "demo.bundle"
    assemble(
        [artifact_factory("arm64", Platform.DEVICE, b"A"), artifact_factory("arm64", Platform.SIMULATOR, b"B")],
        destination,
        options=AssembleOptions(name="demo", lock_timeout_seconds=5.0),
    )
    return destination


def _descriptor(**overrides) -> SliceDescriptor:
    values = {
        "identifier": "device-arm64",
        "architecture": "arm64",
        "platform": Platform.DEVICE,
        "library_path": "device-arm64/lib.a",
        "sha256": "a" * 64,
    }
    values.update(overrides)
    return SliceDescriptor(**values)


def test_published_bundle_is_valid(bundle):
    manifest = validate_bundle(bundle, allowed_architectures=ALLOWED)
    assert [descriptor.identifier for descriptor in manifest.slices] == ["device-arm64", "simulator-arm64"]


def test_missing_slice_path_is_rejected(tmp_path):
    manifest = BundleManifest(name="demo", slices=[_descriptor(identifier="device-arm64", library_path="device-arm64/nope.a")])

    with pytest.raises(ValidationError) as excinfo:
        validate(manifest, tmp_path, allowed_architectures=ALLOWED)

    assert any("does not exist" in issue for issue in excinfo.value.issues)
    assert excinfo.value.exit_code == 6


def test_empty_manifest_is_rejected(tmp_path):
    with pytest.raises(ValidationError, match="no slices"):
        validate(BundleManifest(name="demo"), tmp_path, allowed_architectures=ALLOWED)


def test_duplicates_and_unknown_architectures_are_all_reported(tmp_path):
    manifest = BundleManifest(
        name="demo",
        slices=[
            _descriptor(),
            _descriptor(),
            _descriptor(identifier="device-mips", architecture="mips", library_path="device-mips/lib.a"),
        ],
    )

    with pytest.raises(ValidationError) as excinfo:
        validate(manifest, tmp_path, allowed_architectures=ALLOWED)

    issues = excinfo.value.issues
    assert any("duplicate slice arm64/device/-" in issue for issue in issues)
    assert any("'mips'" in issue for issue in issues)


def test_allow_list_is_configurable(bundle):
    with pytest.raises(ValidationError, match="unrecognized architecture"):
        validate_bundle(bundle, allowed_architectures=["x86_64"])


def test_escaping_library_path_is_rejected(tmp_path):
    (tmp_path / "outside.a").write_bytes(b"x")
    root = tmp_path / "bundle"
    root.mkdir()
    manifest = BundleManifest(name="demo", slices=[_descriptor(library_path="../outside.a")])

    with pytest.raises(ValidationError, match="not bundle-relative"):
        validate(manifest, root, allowed_architectures=ALLOWED)


def test_tampered_library_is_detected(bundle):
    (bundle / "device-arm64" / "lib.a").write_bytes(b"tampered")

    with pytest.raises(ValidationError, match="sha256"):
        validate_bundle(bundle, allowed_architectures=ALLOWED)

    validate_bundle(bundle, allowed_architectures=ALLOWED, verify_fingerprints=False)


def test_slice_descriptor_must_agree_with_manifest(bundle):
    descriptor_path = bundle / "simulator-arm64" / "slice.json"
    payload = json.loads(descriptor_path.read_text(encoding="utf-8"))
    payload["min_os_version"] = "99.0"
    descriptor_path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValidationError, match="disagrees"):
        validate_bundle(bundle, allowed_architectures=ALLOWED)


def test_unsupported_format_version(bundle):
    manifest_path = bundle / MANIFEST_FILE
    payload = json.loads(manifest_path.read_text(encoding="utf-8"))
    payload["format_version"] = "2"
    manifest_path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValidationError, match="format_version"):
        validate_bundle(bundle, allowed_architectures=ALLOWED)


def test_unsafe_manifest_names_skip_filesystem_checks(tmp_path):
    manifest = BundleManifest(
        name="demo",
        slices=[
            _descriptor(
                identifier="device-../../etc",
                architecture="../../etc",
                library_path="device-arm64/lib.a",
            )
        ],
    )

    with pytest.raises(ValidationError) as excinfo:
        validate(manifest, tmp_path, allowed_architectures=["../../etc"])

    issues = excinfo.value.issues
    assert any("may only contain" in issue for issue in issues)
    assert not any("does not exist" in issue or "slice.json" in issue for issue in issues)

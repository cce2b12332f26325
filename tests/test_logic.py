import base64
import json
from types import SimpleNamespace

import pytest

from conftest import InMemoryRegistry
from ippool_webhook import helpers
from ippool_webhook.config import Settings
from ippool_webhook.exceptions import MalformedAnnotation
from ippool_webhook.models import AdmissionReviewModel, Operation, Pool


def _pool(name, **labels):
	return Pool.from_dict({"metadata": {"name": name, "labels": labels}, "spec": {"cidr": "10.0.0.0/26"}})


def test_pool_labels_normalized_on_read():
	pool = _pool("p1", Location="z1", STATUS="Available", Team="Net")
	assert pool.labels == {"location": "z1", "status": "available", "team": "Net"}
	assert pool.status == "available"
	assert pool.cidr == "10.0.0.0/26"


def test_select_available_first_fit():
	pools = [
		_pool("p1", location="z1", status="used"),
		_pool("p2", location="z2", status="available"),
		_pool("p3", location="z1", status="Available"),
		_pool("p4", location="z1", status="available"),
	]
	chosen = helpers.select_available(pools, "location", "z1")
	assert chosen is not None and chosen.name == "p3"
	# repeated calls on the same ordered input are stable
	assert {helpers.select_available(pools, "Location", "z1").name for _ in range(10)} == {"p3"}


@pytest.mark.parametrize(
	"pools",
	[
		[],
		[_pool("p1", location="z1", status="used")],
		[_pool("p1", location="z2", status="available")],
		[_pool("p1", location="z1")],
	],
)
def test_select_available_none(pools):
	assert helpers.select_available(pools, "location", "z1") is None


@pytest.mark.parametrize(
	"value,expected",
	[
		('["p1"]', "p1"),
		('[ "p1" ]', "p1"),
		("p1", "p1"),
		("  p1 ", "p1"),
		(None, None),
		("", None),
		("   ", None),
	],
)
def test_parse_pool_annotation(value, expected):
	assert helpers.parse_pool_annotation(value) == expected


@pytest.mark.parametrize(
	"value",
	['["p1", "p2"]', "[]", "[1]", '[""]', "[p1", '{"pool": "p1"}', '"p1"', "p1,p2"],
)
def test_parse_pool_annotation_malformed(value):
	with pytest.raises(MalformedAnnotation):
		helpers.parse_pool_annotation(value)


def test_annotation_round_trip_both_encodings():
	written = helpers.format_pool_annotation("pool-a")
	assert written == '["pool-a"]'
	assert helpers.parse_pool_annotation(written) == "pool-a"
	assert helpers.parse_pool_annotation("pool-a") == "pool-a"


def test_patch_creates_annotations_map_when_missing():
	patch = helpers.patch_pool_annotation("cni.projectcalico.org/ipv4pools", "p1", has_annotations=False)
	assert patch == [
		{
			"op": "add",
			"path": "/metadata/annotations",
			"value": {"cni.projectcalico.org/ipv4pools": '["p1"]'},
		}
	]


def test_patch_escapes_annotation_key():
	patch = helpers.patch_pool_annotation("example.com/pool~v1", "p1", has_annotations=True)
	assert patch == [
		{
			"op": "add",
			"path": "/metadata/annotations/example.com~1pool~0v1",
			"value": '["p1"]',
		}
	]


def test_make_admission_response_deny_with_message():
	body = helpers.make_admission_response("u1", allowed=False, message="nope")
	assert body["apiVersion"] == "admission.k8s.io/v1"
	assert body["response"] == {"uid": "u1", "allowed": False, "status": {"message": "nope"}}


def test_make_admission_response_patch_is_base64_json():
	patch = [{"op": "add", "path": "/metadata/annotations", "value": {}}]
	body = helpers.make_admission_response("u1", True, patch)
	assert body["response"]["patchType"] == "JSONPatch"
	assert json.loads(base64.b64decode(body["response"]["patch"])) == patch


def test_admission_review_model_parsing():
	review = {
		"request": {
			"uid": "abc",
			"kind": {"group": "", "version": "v1", "kind": "Namespace"},
			"operation": "DELETE",
			"name": "ns1",
			"object": None,
			"oldObject": {"metadata": {"name": "ns1", "annotations": {"a": "b"}}},
		}
	}
	model = AdmissionReviewModel.from_dict(review)
	assert model is not None
	req = model.request
	assert req.kind == "Namespace"
	assert req.operation is Operation.DELETE
	assert req.obj is None
	assert req.old_obj.annotations == {"a": "b"}
	assert req.namespace_name == "ns1"
	assert req.dry_run is False


def test_admission_request_without_operation_is_unsupported():
	model = AdmissionReviewModel.from_dict({"request": {"uid": "abc", "kind": {"kind": "Namespace"}, "name": "ns1"}})
	assert model.request.operation is Operation.UNSUPPORTED


@pytest.mark.parametrize("raw,expected", [(True, True), (False, False), ("true", False), (None, False)])
def test_admission_request_dry_run(raw, expected):
	model = AdmissionReviewModel.from_dict({"request": {"uid": "abc", "operation": "CREATE", "dryRun": raw}})
	assert model.request.dry_run is expected


@pytest.mark.parametrize("raw", ["CONNECT", "", None, "bogus"])
def test_operation_unknown_is_unsupported(raw):
	assert Operation.parse(raw) is Operation.UNSUPPORTED


@pytest.mark.parametrize("payload", [None, [], {}, {"request": "x"}, {"not": "admission-review"}])
def test_admission_review_model_rejects_garbage(payload):
	assert AdmissionReviewModel.from_dict(payload) is None


def _ns(name, annotations=None, deleting=False):
	return SimpleNamespace(
		metadata=SimpleNamespace(
			name=name,
			annotations=annotations,
			deletion_timestamp="2024-01-01T00:00:00Z" if deleting else None,
		)
	)


class DummyCore:
	class Resp:
		def __init__(self, items):
			self.items = items

	def __init__(self, items):
		self._items = items

	def list_namespace(self, **kwargs):
		return DummyCore.Resp(self._items)


def test_audit_claims_reports_drift():
	registry = InMemoryRegistry()
	registry.add("p1", location="z1", status="used")
	registry.add("p2", location="z1", status="used")
	registry.add("p3", location="z1", status="available")
	registry.add("p4", location="z1", Status="USED")
	annotation = "cni.projectcalico.org/ipv4pools"
	core = DummyCore(
		[
			_ns("ns1", {annotation: '["p1"]'}),
			_ns("ns2", {annotation: "p3"}),
			_ns("ns3", {annotation: '["p1"]'}),
			_ns("ns4", {annotation: "[broken"}),
			_ns("ns5", {annotation: '["gone"]'}),
			_ns("ns6", {annotation: '["p4"]'}),
			_ns("ns7", {annotation: '["p2"]'}, deleting=True),
			_ns("ns8", None),
		]
	)

	report = helpers.audit_claims(core, Settings(), registry)

	assert report is not None
	assert report.claims["p1"] == ["ns1", "ns3"]
	assert report.shared_pools == ["p1"]
	assert sorted(report.dangling_claims) == [("ns2", "p3"), ("ns5", "gone")]
	assert report.orphaned_pools == ["p2"]
	assert report.malformed == ["ns4"]
	assert not report.clean
	# audit never writes
	assert registry.writes == []


def test_audit_claims_without_registry():
	assert helpers.audit_claims(DummyCore([]), Settings(), None) is None

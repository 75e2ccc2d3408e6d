import pytest
import requests

from conftest import FakeHTTP, FakeResponse

from tpn_connect.errors import NoRegionInBucket, ProvisioningFailed, RegionFetchFailed
from tpn_connect.models import Validator
from tpn_connect.provisioning import ProvisioningClient, select_region

V = Validator("4", "10.0.0.4:3000", "Frankfurt")
COUNTRIES = "http://10.0.0.4:3000/api/config/countries"
NEW = "http://10.0.0.4:3000/api/config/new"


def test_list_regions_keeps_catalog_order():
    http = FakeHTTP({COUNTRIES: FakeResponse(json_data=["us", "GB", "DE"])})
    assert ProvisioningClient(session=http).list_regions(V) == ["US", "GB", "DE"]
    assert http.calls == [(COUNTRIES, None)]


def test_empty_catalog_is_not_an_error():
    http = FakeHTTP({COUNTRIES: FakeResponse(json_data=[])})
    assert ProvisioningClient(session=http).list_regions(V) == []


@pytest.mark.parametrize(
    "response",
    [FakeResponse(status=500), FakeResponse(json_data={"error": "nope"}), FakeResponse(text="<html>"), requests.ConnectionError("refused")],
)
def test_list_regions_failures(response):
    http = FakeHTTP({COUNTRIES: response})
    with pytest.raises(RegionFetchFailed):
        ProvisioningClient(session=http).list_regions(V)


def test_request_config_sends_lease_params():
    http = FakeHTTP({NEW: FakeResponse(text="[Interface]\nAddress = 10.13.13.2/32\n")})
    artifact = ProvisioningClient(session=http).request_config(V, "GB", 60)
    assert artifact.startswith("[Interface]")
    assert http.calls == [(NEW, {"format": "text", "geo": "GB", "lease_minutes": 60})]


@pytest.mark.parametrize("response", [FakeResponse(status=503), FakeResponse(text="  \n"), requests.Timeout("slow")])
def test_request_config_failures(response):
    http = FakeHTTP({NEW: response})
    with pytest.raises(ProvisioningFailed):
        ProvisioningClient(session=http).request_config(V, "GB", 60)


def test_endpoint_with_scheme_is_used_as_is():
    v = Validator("7", "https://val.example:8443/", "Tokyo")
    url = "https://val.example:8443/api/config/countries"
    http = FakeHTTP({url: FakeResponse(json_data=["JP"])})
    assert ProvisioningClient(session=http).list_regions(v) == ["JP"]


def test_select_region_uses_catalog_order():
    assert select_region("EU", ["US", "GB", "DE"]) == "GB"
    assert select_region("US", ["JP", "CA", "US"]) == "CA"
    assert select_region("ASIA", ["SG", "JP"]) == "SG"


@pytest.mark.parametrize("bucket", ["US", "EU", "ASIA"])
def test_select_region_no_hit(bucket):
    with pytest.raises(NoRegionInBucket) as exc:
        select_region(bucket, ["BR", "ZA"])
    assert exc.value.bucket == bucket

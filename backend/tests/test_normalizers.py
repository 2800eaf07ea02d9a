"""
Tests for telemetry normalizers.

Covers:
- Numeric gating (missing, None, bool, NaN, strings)
- SLE ratios including the zero-minute case
- Org counts only from the payload that arrived
- AP bands discovered from payload keys
- Port speed conversion and counter mapping
- Environment and wireless sensors
- LLDP neighbor extraction
"""

import math

import pytest

from normalizers import AccessPointNormalizer, OrgNormalizer, as_number, sle_ratio
from normalizers.base import MetricGroup, NormalizedAccessPoint, RadioBand, band_frequency
from tests.conftest import ap_detail_payload, ap_stats_payload


class TestNumericHelpers:

    @pytest.mark.parametrize(
        "value,expected",
        [
            (5, 5.0),
            (2.5, 2.5),
            ("7", 7.0),
            (" 3.5 ", 3.5),
            (None, None),
            (True, None),
            ("n/a", None),
            (float("nan"), None),
            (float("inf"), None),
            ({}, None),
        ],
    )
    def test_as_number(self, value, expected):
        assert as_number(value) == expected

    def test_sle_ratio(self):
        assert sle_ratio(150, 200) == 75.0
        assert sle_ratio(0, 0) == 0.0

    def test_band_frequency(self):
        assert band_frequency("band_24") == 2.4
        assert band_frequency("band_5") == 5.0
        assert band_frequency("band_6") == 6.0
        assert band_frequency("band_x") == 0.0

    def test_metric_group_skips_missing_values(self):
        group = MetricGroup("m", ("m",))
        assert group.add("a", 1) is True
        assert group.add("b", None) is False
        assert group.add("c", "bogus") is False
        assert group.values == {"a": 1.0}
        assert group.descriptor().names == ["a"]


class TestOrgNormalizer:

    def setup_method(self):
        self.normalizer = OrgNormalizer()

    def test_counts_from_both_payloads(self):
        counts = self.normalizer.org_counts(
            {"num_aps": 4, "num_switches": 1},
            {"num_sites": 2, "num_devices_connected": 3},
        )
        assert counts.values == {
            "aps": 4.0,
            "switches": 1.0,
            "sites": 2.0,
            "devices_connected": 3.0,
        }

    def test_counts_without_stats_payload(self):
        counts = self.normalizer.org_counts({"num_aps": 4}, None)
        assert "sites" not in counts.values
        assert counts.values == {"aps": 4.0}

    def test_sle_ratios(self):
        stats = {
            "sle": [
                {"path": "coverage", "user_minutes": {"total": 200, "ok": 150}},
                {"path": "time-to-connect", "user_minutes": {"total": 0, "ok": 0}},
                {"path": "roaming", "user_minutes": {"total": 10}},
                {"user_minutes": {"total": 10, "ok": 5}},
            ]
        }
        ratios = self.normalizer.sle_ratios(stats)
        assert ratios == {"coverage": 75.0, "time_to_connect": 0.0}

    def test_normalize_without_payloads(self):
        assert self.normalizer.normalize(None, None) == []

    def test_normalize_groups(self):
        groups = self.normalizer.normalize({"num_aps": 2}, {"sle": []})
        assert [g.measurement for g in groups] == ["cloud-org-devices"]

    def test_access_points_from_site_stats(self):
        site = {"id": "s1", "name": "HQ"}
        devices = [
            dict(ap_stats_payload(mac="AABBCCDDEEFF", name="lobby"), type="ap"),
            {"type": "switch", "mac": "001122334455"},
            {"type": "ap", "serial": "A01234"},
            {"type": "ap", "mac": "0011223344ff", "serial": "A09876"},
        ]
        aps = self.normalizer.access_points(site, devices)
        assert [ap.mac_address for ap in aps] == ["aabbccddeeff", "0011223344ff"]
        assert aps[0].name == "lobby"
        assert aps[0].num_clients == 12
        assert aps[0].primary_band.key == "band_5"
        assert aps[1].name == "HQ-9876"
        assert aps[1].model == "Cloud AP"
        assert aps[1].primary_band is None

    def test_access_points_tolerates_non_list(self):
        assert self.normalizer.access_points({"id": "s1"}, {"error": "x"}) == []


class TestPrimaryBand:

    def test_highest_enabled_band_wins(self):
        ap = NormalizedAccessPoint(
            mac_address="aa",
            name="ap",
            bands=[
                RadioBand(key="band_24", label="2.4 GHz"),
                RadioBand(key="band_5", label="5 GHz"),
                RadioBand(key="band_6", label="6 GHz", disabled=True),
            ],
        )
        assert ap.primary_band.key == "band_5"


class TestAccessPointNormalizer:

    def setup_method(self):
        self.normalizer = AccessPointNormalizer()

    def test_device_fields(self):
        result = self.normalizer.normalize(
            ap_detail_payload("5c5b350e0001", "ap-1"), ap_stats_payload(ip="10.0.0.11")
        )
        assert result.device.hardware == "AP43"
        assert result.device.version == "0.12.27139"
        assert result.device.serial == "A00001"
        assert result.device.uptime == 86400
        assert result.device.ip_address == "10.0.0.11"
        assert result.device.connected is True
        assert result.warnings == []

    def test_no_payloads(self):
        result = self.normalizer.normalize(None, None)
        assert result.device.connected is None
        assert result.device.present() == {}
        assert result.ports == []
        assert result.sensors == []
        assert result.wireless_sensors == []
        assert result.neighbors == []
        assert result.resource_groups == []
        assert result.warnings == ["No payload available"]

    def test_bands_discovered_from_keys(self):
        stats = {"radio_stat": {"band_6": {"channel": 37}, "band_24": {"channel": 1}, "other": {}}}
        result = self.normalizer.normalize(None, stats)
        assert [b.key for b in result.radio_bands] == ["band_24", "band_6"]
        assert result.radio_bands[1].label == "6 GHz"

    def test_port_speed_is_bits_per_second(self):
        result = self.normalizer.normalize(ap_detail_payload("5c5b350e0001"), None)
        (port,) = result.ports
        assert port.if_name == "eth0"
        assert port.if_index == 0
        assert port.speed == 1_000_000_000
        assert port.oper_status == "up"
        assert port.duplex == "fullDuplex"
        assert port.in_octets is None

    def test_port_counters(self):
        result = self.normalizer.normalize(None, ap_stats_payload())
        (port,) = result.ports
        assert port.in_octets == 5000
        assert port.out_octets == 7000
        assert port.in_ucast_pkts == 50
        assert port.out_ucast_pkts == 70
        assert port.if_descr == "eth0"

    def test_ethernet_port_stats_by_index(self):
        detail = {"ethernet_interfaces": [{"name": "eth1", "index": 1, "up": False}]}
        stats = {"ethernet_port_stats": {"1": {"rx_bytes": 10, "tx_packets": 4}}}
        (port,) = self.normalizer.normalize(detail, stats).ports
        assert port.oper_status == "down"
        assert port.in_octets == 10
        assert port.out_ucast_pkts == 4

    def test_index_stats_without_counters_keep_merged_counters(self):
        stats = {
            "port_stat": {"eth0": {"rx_bytes": 100, "tx_bytes": 200}},
            "ethernet_port_stats": {"0": {"up": True}},
        }
        (port,) = self.normalizer.normalize(None, stats).ports
        assert port.oper_status == "up"
        assert port.in_octets == 100
        assert port.out_octets == 200

    def test_zero_link_speed_kept(self):
        detail = {"ethernet_interfaces": [{"name": "eth0", "index": 0, "up": False, "speed": 0}]}
        (port,) = self.normalizer.normalize(detail, None).ports
        assert port.speed == 0
        assert port.oper_status == "down"

    def test_environment_sensors(self):
        result = self.normalizer.normalize(None, ap_stats_payload())
        by_index = {s.sensor_index: s for s in result.sensors}
        assert set(by_index) == {"ambient_temp", "cpu_temp", "humidity"}
        assert by_index["cpu_temp"].sensor_class == "temperature"
        assert by_index["cpu_temp"].value == 61.0
        assert by_index["humidity"].unit == "%"

    def test_unknown_temperature_key(self):
        result = self.normalizer.normalize(None, {"env_stat": {"board_temp": 40}})
        (sensor,) = result.sensors
        assert sensor.sensor_descr == "Board Temperature"

    def test_wireless_sensors(self):
        result = self.normalizer.normalize(None, ap_stats_payload())
        keys = {(s.sensor_class, s.sensor_index): s.value for s in result.wireless_sensors}
        assert keys[("clients", "total")] == 12.0
        assert keys[("clients", "band_24")] == 4.0
        assert keys[("utilization", "band_24")] == 35.0
        assert keys[("channel", "band_5")] == 36.0
        assert keys[("noise-floor", "band_5")] == -97.0

    def test_resource_groups(self):
        result = self.normalizer.normalize(None, ap_stats_payload())
        groups = {g.series_name: g for g in result.resource_groups}
        assert groups[("processor", "cloud", "0")].values == {"usage": 7.0}

        memory = groups[("mempool", "cloud", "0")].values
        assert memory["total"] == 1024000 * 1024
        assert memory["used"] == 256000 * 1024
        assert math.isclose(memory["percent"], 25.0)

        environment = groups[("environment",)].values
        assert "pressure" not in environment
        assert environment["cpu_temp"] == 61.0

        radio = groups[("cloud-ap-radio", "band_24")]
        assert radio.values["util_all"] == 35.0
        assert "util_non_wifi" not in radio.values
        assert radio.tags == {"band": "band_24", "label": "2.4 GHz"}

    def test_cpu_from_idle(self):
        result = self.normalizer.normalize(None, {"cpu_stat": {"idle": 80}})
        (group,) = result.resource_groups
        assert group.values == {"usage": 20.0}

    def test_memory_needs_total(self):
        result = self.normalizer.normalize(None, {"mem_used_kb": 100})
        assert result.resource_groups == []

    def test_neighbors(self):
        result = self.normalizer.normalize(None, ap_stats_payload())
        (neighbor,) = result.neighbors
        assert neighbor.local_port == "eth0"
        assert neighbor.remote_hostname == "core-sw-1"
        assert neighbor.remote_port == "ge-0/0/1"
        assert neighbor.remote_mgmt_ip == "10.0.0.1"

    def test_neighbor_without_identity_ignored(self):
        result = self.normalizer.normalize(None, {"lldp_stat": {"port_id": "x"}})
        assert result.neighbors == []

    def test_disconnected(self):
        result = self.normalizer.normalize(None, {"status": "disconnected"})
        assert result.device.connected is False

"""Tests for the port allocator sweep."""

import errno
import logging

import pytest

from switcheroo.config.models import PortRange
from switcheroo.domain.errors import BindError, PortExhaustedError
from switcheroo.services.ports import allocate_port, candidate_ports

RANGE = PortRange(min=40400, max=40409)


class TestCandidatePorts:
    def test_starts_at_min_when_nothing_in_use(self) -> None:
        assert candidate_ports(set(), RANGE)[:3] == [40400, 40401, 40402]

    def test_starts_after_highest_in_use(self) -> None:
        assert candidate_ports({40400, 40403}, RANGE)[0] == 40404

    def test_wraps_around(self) -> None:
        assert candidate_ports({40409}, RANGE)[:2] == [40400, 40401]

    def test_one_full_lap(self) -> None:
        ports = candidate_ports({40405}, RANGE)
        assert len(ports) == RANGE.size
        assert sorted(ports) == list(range(40400, 40410))

    def test_in_use_outside_range_stays_in_range(self) -> None:
        ports = candidate_ports({50000}, PortRange(min=40400, max=40403))
        assert sorted(ports) == [40400, 40401, 40402, 40403]


class TestAllocatePort:
    def test_first_port_when_nothing_in_use(self, binder) -> None:
        port, listener = allocate_port(set(), RANGE, bind=binder)
        assert port == 40400
        assert listener.getsockname()[1] == 40400

    def test_after_highest_in_use(self, binder) -> None:
        port, _ = allocate_port({40400, 40401}, RANGE, bind=binder)
        assert port == 40402
        assert binder.attempted == [40402]

    def test_in_use_ports_never_bound(self, binder) -> None:
        # start at 40400 (wrapped), 40400-40402 in use
        port, _ = allocate_port({40400, 40401, 40402, 40409}, RANGE, bind=binder)
        assert port == 40403
        assert 40409 not in binder.attempted
        assert binder.attempted == [40403]

    def test_skips_busy_ports(self, binder) -> None:
        binder.busy.update({40400, 40401})
        port, _ = allocate_port(set(), RANGE, bind=binder)
        assert port == 40402
        assert binder.attempted == [40400, 40401, 40402]

    def test_exhausted_single_port_range(self, binder) -> None:
        one = PortRange(min=40400, max=40400)
        with pytest.raises(PortExhaustedError) as excinfo:
            allocate_port({40400}, one, bind=binder)
        assert excinfo.value.detail["attempts"] == 1
        assert excinfo.value.code == "PORT_EXHAUSTED"
        assert "[40400:40400]" in excinfo.value.message
        assert binder.attempted == []

    def test_exhausted_all_busy(self, binder) -> None:
        binder.busy.update(range(40400, 40410))
        with pytest.raises(PortExhaustedError) as excinfo:
            allocate_port(set(), RANGE, bind=binder)
        assert excinfo.value.detail == {"port_min": 40400, "port_max": 40409, "attempts": 10}

    def test_other_bind_error_aborts(self, binder) -> None:
        binder.errors[40400] = errno.EACCES
        with pytest.raises(BindError) as excinfo:
            allocate_port(set(), RANGE, bind=binder)
        assert excinfo.value.detail == {"port": 40400}
        assert binder.attempted == [40400]

    def test_host_passed_to_binder(self) -> None:
        seen: list[tuple[int, str]] = []

        def bind(port: int, host: str):
            seen.append((port, host))
            return object()

        allocate_port(set(), RANGE, bind=bind, host="127.0.0.1")
        assert seen == [(40400, "127.0.0.1")]

    def test_logs_attempts(self, binder, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="switcheroo")
        binder.busy.add(40402)
        allocate_port({40400, 40401}, RANGE, bind=binder)
        assert "Port 40403 was allocated (attempts: 2)" in caplog.text

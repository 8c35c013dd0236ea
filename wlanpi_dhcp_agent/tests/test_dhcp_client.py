from wlanpi_dhcp_agent.lib.dhcp import DHCPClient, DhcpConfig


def test_acquire_command_uses_per_interface_files(tmp_path):
    client = DHCPClient("dhclient", lease_dir=tmp_path / "leases", run_dir=tmp_path / "run")

    cmd = client.acquire_command("eth0")

    assert cmd == [
        "dhclient",
        "-4",
        "-v",
        "-1",
        "-pf",
        str(tmp_path / "run" / "dhclient.eth0.pid"),
        "-lf",
        str(tmp_path / "leases" / "dhclient.eth0.leases"),
        "eth0",
    ]


def test_acquire_command_passes_requested_options(tmp_path):
    client = DHCPClient(lease_dir=tmp_path, run_dir=tmp_path)
    config = DhcpConfig(hostname="wlanpi", vendor_class="pi", client_id="01:02")

    cmd = client.acquire_command("wlan0", config)

    assert cmd[-7:] == ["-H", "wlanpi", "-V", "pi", "-C", "01:02", "wlan0"]


def test_read_lease_without_lease_file(tmp_path):
    assert DHCPClient(lease_dir=tmp_path, run_dir=tmp_path).read_lease("eth0") is None


def test_configured_hostname_is_the_fallback(tmp_path):
    client = DHCPClient(lease_dir=tmp_path, run_dir=tmp_path, hostname="agent")

    assert client.acquire_command("eth0")[-3:] == ["-H", "agent", "eth0"]
    assert client.acquire_command("eth0", DhcpConfig(hostname="pi"))[-3:] == [
        "-H",
        "pi",
        "eth0",
    ]

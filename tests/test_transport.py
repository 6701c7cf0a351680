import paramiko
import pytest

import vault_ssh.transport as transport_mod
from vault_ssh.errors import RemoteCopyError, RemoteExecError
from vault_ssh.transport import SSHTarget, SSHTransport, host_key_policy

TARGET = SSHTarget(host="10.1.2.3", port=2222, username="admin", private_key="PEM")


class _Channel:
    """The remote command only exits once its pending output has been read."""

    def __init__(self, status, out, err, never_exits=False):
        self.status = status
        self.out = list(out)
        self.err = list(err)
        self.never_exits = never_exits

    def recv_ready(self):
        return bool(self.out)

    def recv(self, nbytes):
        return self.out.pop(0)

    def recv_stderr_ready(self):
        return bool(self.err)

    def recv_stderr(self, nbytes):
        return self.err.pop(0)

    def exit_status_ready(self):
        return not self.never_exits and not self.out and not self.err

    def recv_exit_status(self):
        assert self.exit_status_ready(), "blocking wait on a command that has not exited"
        return self.status


class _Stream:
    def __init__(self, channel):
        self.channel = channel

    def read(self):
        return b""


class _SFTP:
    def __init__(self, owner):
        self.owner = owner

    def putfo(self, fl, remotepath):
        if self.owner.fail_put:
            raise OSError("disk full")
        self.owner.uploaded[remotepath] = fl.read()

    def close(self):
        self.owner.events.append("sftp_close")


class FakeSSHClient:
    instances = []
    refuse = False
    exit_status_default = 0
    output = [b"ok"]
    never_exits = False

    def __init__(self):
        self.events = []
        self.uploaded = {}
        self.fail_put = False
        self.policy = None
        FakeSSHClient.instances.append(self)

    def load_system_host_keys(self):
        pass

    def set_missing_host_key_policy(self, policy):
        self.policy = policy

    def connect(self, **kwargs):
        self.events.append(("connect", kwargs["hostname"], kwargs["port"], kwargs["username"]))
        if FakeSSHClient.refuse:
            raise paramiko.AuthenticationException("denied")

    def open_sftp(self):
        return _SFTP(self)

    def exec_command(self, command, timeout=None):
        self.events.append(("exec", command))
        channel = _Channel(FakeSSHClient.exit_status_default, FakeSSHClient.output, [b"bad things"], FakeSSHClient.never_exits)
        return None, _Stream(channel), _Stream(channel)

    def close(self):
        self.events.append("close")


@pytest.fixture()
def fake_paramiko(monkeypatch):
    FakeSSHClient.instances = []
    FakeSSHClient.refuse = False
    FakeSSHClient.exit_status_default = 0
    FakeSSHClient.output = [b"ok"]
    FakeSSHClient.never_exits = False
    monkeypatch.setattr(transport_mod.paramiko, "SSHClient", FakeSSHClient)
    monkeypatch.setattr(transport_mod, "load_private_key", lambda text: object())
    return FakeSSHClient


def test_upload_opens_and_closes_a_session(fake_paramiko):
    SSHTransport().upload(TARGET, "abc", "ssh-rsa AAA\n")
    (client,) = fake_paramiko.instances
    assert client.uploaded == {"abc": b"ssh-rsa AAA\n"}
    assert client.events[0] == ("connect", "10.1.2.3", 2222, "admin")
    assert client.events[-2:] == ["sftp_close", "close"]


def test_each_operation_uses_a_fresh_session(fake_paramiko):
    t = SSHTransport()
    t.upload(TARGET, "a", "x")
    t.run(TARGET, "true")
    assert len(fake_paramiko.instances) == 2


def test_upload_auth_failure_is_remote_copy_error(fake_paramiko):
    fake_paramiko.refuse = True
    with pytest.raises(RemoteCopyError):
        SSHTransport().upload(TARGET, "abc", "x")
    assert fake_paramiko.instances[0].events[-1] == "close"


def test_run_returns_stdout(fake_paramiko):
    assert SSHTransport().run(TARGET, "echo ok") == "ok"
    assert ("exec", "echo ok") in fake_paramiko.instances[0].events


def test_run_nonzero_exit_is_remote_exec_error(fake_paramiko):
    fake_paramiko.exit_status_default = 3
    with pytest.raises(RemoteExecError) as ei:
        SSHTransport().run(TARGET, "false")
    assert "exited 3" in ei.value.message


def test_run_connect_failure_is_remote_exec_error(fake_paramiko):
    fake_paramiko.refuse = True
    with pytest.raises(RemoteExecError):
        SSHTransport().run(TARGET, "true")


def test_run_drains_large_output_before_exit(fake_paramiko):
    fake_paramiko.output = [b"line %d\n" % i for i in range(500)]
    out = SSHTransport().run(TARGET, "chatty")
    assert out.count("\n") == 500
    assert out.startswith("line 0\n") and out.endswith("line 499\n")


def test_run_hung_command_times_out(fake_paramiko):
    fake_paramiko.never_exits = True
    with pytest.raises(RemoteExecError) as ei:
        SSHTransport(command_timeout=0.1).run(TARGET, "sleep infinity")
    assert "timed out" in ei.value.message
    assert fake_paramiko.instances[0].events[-1] == "close"


def test_host_key_policies():
    assert isinstance(host_key_policy("reject"), paramiko.RejectPolicy)
    assert isinstance(host_key_policy("auto_add"), paramiko.AutoAddPolicy)
    assert isinstance(host_key_policy("warning"), paramiko.WarningPolicy)
    assert isinstance(host_key_policy(""), paramiko.WarningPolicy)


def test_load_private_key_rejects_garbage():
    with pytest.raises(paramiko.SSHException):
        transport_mod.load_private_key("not a key")

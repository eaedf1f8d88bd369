import os
import stat

import pytest
import yaml

from conftest import CA_PEM, CERT_PEM, KEY_PEM, FakeKubectl, FakeRunner, b64, make_kubeconfig
from rke2lab.errors import CredentialError
from rke2lab.modules.multipass import Multipass
from rke2lab.modules.rke2.kubeconfig import (
    REMOTE_KUBECONFIG, fetch_kubeconfig, merge_kubeconfig, rewrite_server_address
)

SERVER_IP = "10.0.0.10"
CONTEXT = "rke2-10.0.0.10"
USER = "rke2-10.0.0.10-admin"


def mode(path):
    return stat.S_IMODE(os.stat(path).st_mode)


class TestRewrite:
    def test_loopback_forms_are_rewritten(self):
        text = (
            "clusters:\n"
            "- cluster:\n"
            "    server: https://127.0.0.1:6443\n"
            "- cluster:\n"
            "    server: https://localhost:6443\n"
        )
        out = rewrite_server_address(text, SERVER_IP)
        assert out.count("server: https://10.0.0.10:6443") == 2
        assert "127.0.0.1" not in out
        assert "localhost" not in out

    def test_everything_else_is_untouched(self):
        text = make_kubeconfig(server="https://127.0.0.1:6443")
        text += "# note: https://127.0.0.1:6443 stays in comments without the server key\n"
        text += "    server: https://192.168.1.5:6443\n"
        out = rewrite_server_address(text, SERVER_IP)
        before = text.splitlines()
        after = out.splitlines()
        assert len(before) == len(after)
        changed = [(a, b) for a, b in zip(before, after) if a != b]
        assert changed == [(
            "    server: https://127.0.0.1:6443",
            "    server: https://10.0.0.10:6443",
        )]

    def test_no_loopback_is_a_no_op(self):
        text = make_kubeconfig(server="https://10.1.1.1:6443")
        assert rewrite_server_address(text, SERVER_IP) == text


def test_fetch_kubeconfig(tmp_path):
    runner = FakeRunner(lambda cmd, input: (0, make_kubeconfig()))
    dest = tmp_path / "out" / "rke2.yaml"

    path = fetch_kubeconfig(Multipass(runner=runner), "rke2-master", SERVER_IP, dest)

    assert path == dest
    assert runner.calls == [["multipass", "exec", "rke2-master", "--", "sudo", "cat", REMOTE_KUBECONFIG]]
    data = yaml.safe_load(dest.read_text())
    assert data["clusters"][0]["cluster"]["server"] == "https://10.0.0.10:6443"
    assert mode(dest) == 0o600


class TestMerge:
    def test_token_with_ca(self, tmp_path, kubeconfig_file):
        source = kubeconfig_file(server="https://10.0.0.10:6443", token="t0k3n", cert=False, key=False)
        kubectl = FakeKubectl()

        result = merge_kubeconfig(source, SERVER_IP, kube_dir=tmp_path / "kube", kubectl=kubectl)

        ca_file = tmp_path / "kube" / f"{CONTEXT}-ca.crt"
        assert result.context == CONTEXT
        assert result.user == USER
        assert result.auth == "token"
        assert ca_file.read_bytes() == CA_PEM
        assert kubectl.clusters[CONTEXT] == {
            "server": "https://10.0.0.10:6443",
            "certificate-authority": str(ca_file),
        }
        assert kubectl.users[USER] == {"token": "t0k3n"}
        assert kubectl.contexts[CONTEXT] == {"cluster": CONTEXT, "user": USER}
        home_kc = f"--kubeconfig={tmp_path / 'kube' / 'config'}"
        assert all(call[1] == home_kc for call in kubectl.calls)

    def test_without_ca(self, tmp_path, kubeconfig_file):
        source = kubeconfig_file(ca=False, token="t0k3n", cert=False, key=False)
        kubectl = FakeKubectl()

        result = merge_kubeconfig(source, SERVER_IP, kube_dir=tmp_path / "kube", kubectl=kubectl)

        assert result.ca_file is None
        assert not (tmp_path / "kube" / f"{CONTEXT}-ca.crt").exists()
        assert "certificate-authority" not in kubectl.clusters[CONTEXT]

    def test_client_certificate(self, tmp_path, kubeconfig_file):
        source = kubeconfig_file()
        kubectl = FakeKubectl()

        result = merge_kubeconfig(source, SERVER_IP, kube_dir=tmp_path / "kube", kubectl=kubectl)

        assert result.auth == "certificate"
        assert result.client_certificate_file.read_bytes() == CERT_PEM
        assert result.client_key_file.read_bytes() == KEY_PEM
        assert mode(result.client_key_file) == 0o600
        assert kubectl.users[USER] == {
            "client-certificate": str(result.client_certificate_file),
            "client-key": str(result.client_key_file),
        }

    def test_token_is_preferred_over_certificate(self, tmp_path, kubeconfig_file):
        source = kubeconfig_file(token="t0k3n")
        kubectl = FakeKubectl()

        result = merge_kubeconfig(source, SERVER_IP, kube_dir=tmp_path / "kube", kubectl=kubectl)

        assert result.auth == "token"
        assert result.client_key_file is None
        assert kubectl.users[USER] == {"token": "t0k3n"}

    @pytest.mark.parametrize("kwargs", [
        {"cert": False, "key": False},
        {"cert": True, "key": False},
        {"cert": False, "key": True},
    ])
    def test_missing_credentials_write_nothing(self, tmp_path, kubeconfig_file, kwargs):
        source = kubeconfig_file(**kwargs)
        kubectl = FakeKubectl()
        kube_dir = tmp_path / "kube"

        with pytest.raises(CredentialError, match="No token and no client certificate/key"):
            merge_kubeconfig(source, SERVER_IP, kube_dir=kube_dir, kubectl=kubectl)

        assert not kube_dir.exists()
        assert kubectl.calls == []

    def test_invalid_base64(self, tmp_path):
        source = tmp_path / "rke2.yaml"
        source.write_text(yaml.safe_dump({
            "clusters": [{"name": "default", "cluster": {"server": "https://10.0.0.10:6443"}}],
            "users": [{"name": "default", "user": {
                "client-certificate-data": "not base64!",
                "client-key-data": "not base64!",
            }}],
        }))
        kubectl = FakeKubectl()

        with pytest.raises(CredentialError, match="Invalid base64"):
            merge_kubeconfig(source, SERVER_IP, kube_dir=tmp_path / "kube", kubectl=kubectl)
        assert kubectl.calls == []

    def test_wrapped_base64_is_accepted(self, tmp_path):
        encoded = b64(CA_PEM)
        wrapped = "".join(f"      {encoded[i:i + 40]}\n" for i in range(0, len(encoded), 40))
        source = tmp_path / "rke2.yaml"
        source.write_text(
            "clusters:\n"
            "- name: default\n"
            "  cluster:\n"
            "    server: https://10.0.0.10:6443\n"
            "    certificate-authority-data: |\n"
            f"{wrapped}"
            "users:\n"
            "- name: default\n"
            "  user:\n"
            "    token: t0k3n\n"
        )
        kubectl = FakeKubectl()

        result = merge_kubeconfig(source, SERVER_IP, kube_dir=tmp_path / "kube", kubectl=kubectl)

        assert result.ca_file.read_bytes() == CA_PEM

    @pytest.mark.parametrize("user", [
        {"client-certificate-data": b64(CERT_PEM), "client-key-data": 12345},
        {"client-certificate-data": ["not", "a", "string"], "client-key-data": b64(KEY_PEM)},
    ])
    def test_non_string_credential_data(self, tmp_path, user):
        source = tmp_path / "rke2.yaml"
        source.write_text(yaml.safe_dump({
            "clusters": [{"name": "default", "cluster": {"server": "https://10.0.0.10:6443"}}],
            "users": [{"name": "default", "user": user}],
        }))
        kubectl = FakeKubectl()

        with pytest.raises(CredentialError, match="expected a base64 string"):
            merge_kubeconfig(source, SERVER_IP, kube_dir=tmp_path / "kube", kubectl=kubectl)
        assert kubectl.calls == []

    @pytest.mark.parametrize("content", [
        "users: []\n",
        "clusters:\n- cluster: {}\nusers:\n- user: {}\n",
        "- just\n- a list\n",
        "clusters: [\n",
    ])
    def test_malformed_source(self, tmp_path, content):
        source = tmp_path / "rke2.yaml"
        source.write_text(content)
        with pytest.raises(CredentialError):
            merge_kubeconfig(source, SERVER_IP, kube_dir=tmp_path / "kube", kubectl=FakeKubectl())

    def test_missing_source(self, tmp_path):
        with pytest.raises(CredentialError, match="not found"):
            merge_kubeconfig(tmp_path / "nope.yaml", SERVER_IP, kube_dir=tmp_path / "kube", kubectl=FakeKubectl())

    def test_remerge_is_idempotent(self, tmp_path, kubeconfig_file):
        source = kubeconfig_file(token="t0k3n")
        kubectl = FakeKubectl()

        merge_kubeconfig(source, SERVER_IP, kube_dir=tmp_path / "kube", kubectl=kubectl)
        first = (dict(kubectl.clusters), dict(kubectl.users), dict(kubectl.contexts))
        merge_kubeconfig(source, SERVER_IP, kube_dir=tmp_path / "kube", kubectl=kubectl)

        assert (kubectl.clusters, kubectl.users, kubectl.contexts) == first
        assert list(kubectl.contexts) == [CONTEXT]

    def test_remerge_drops_stale_credentials(self, tmp_path, kubeconfig_file):
        kubectl = FakeKubectl()
        kube_dir = tmp_path / "kube"

        merge_kubeconfig(kubeconfig_file(token="t0k3n"), SERVER_IP, kube_dir=kube_dir, kubectl=kubectl)
        merge_kubeconfig(kubeconfig_file(ca=False), SERVER_IP, kube_dir=kube_dir, kubectl=kubectl)

        assert "token" not in kubectl.users[USER]
        assert set(kubectl.users[USER]) == {"client-certificate", "client-key"}
        assert "certificate-authority" not in kubectl.clusters[CONTEXT]

    def test_switches_when_no_current_context(self, tmp_path, kubeconfig_file):
        kubectl = FakeKubectl()
        result = merge_kubeconfig(kubeconfig_file(), SERVER_IP, kube_dir=tmp_path / "kube", kubectl=kubectl)
        assert result.switched
        assert kubectl.current == CONTEXT

    def test_keeps_existing_current_context(self, tmp_path, kubeconfig_file):
        kubectl = FakeKubectl(current="kind-dev")
        result = merge_kubeconfig(kubeconfig_file(), SERVER_IP, kube_dir=tmp_path / "kube", kubectl=kubectl)
        assert not result.switched
        assert kubectl.current == "kind-dev"
        assert not kubectl.matching("use-context")

    def test_set_current_overrides_existing_context(self, tmp_path, kubeconfig_file):
        kubectl = FakeKubectl(current="kind-dev")
        result = merge_kubeconfig(
            kubeconfig_file(), SERVER_IP, kube_dir=tmp_path / "kube", set_current=True, kubectl=kubectl
        )
        assert result.switched
        assert kubectl.current == CONTEXT

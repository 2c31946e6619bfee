"""Tests for the command line interface."""

import json
from xml.etree import ElementTree
from xml.sax.saxutils import escape

import pytest
from click.testing import CliRunner

from qbxml_relay import cli as cli_module
from qbxml_relay.cli import cli
from qbxml_relay.soap.envelope import QBWC_NS, SOAP_NS

from tests.conftest import CUSTOMER_RESPONSE, ERROR_RESPONSE, VALID_REQUEST


@pytest.fixture(autouse=True)
def logging_calls(monkeypatch):
    """Keep log output out of the command output."""
    calls = []
    monkeypatch.setattr(cli_module, "configure_logging", lambda **kwargs: calls.append(kwargs))
    return calls


@pytest.fixture
def config_dir(tmp_path):
    directory = tmp_path / "config"
    directory.mkdir()
    store_dir = tmp_path / "sessions"
    (directory / "defaults.yaml").write_text(
        f'session:\n  store_dir: "{store_dir.as_posix()}"\n', encoding="utf-8"
    )
    return directory


@pytest.fixture
def run(config_dir):
    runner = CliRunner()

    def _run(*args, input=None):
        return runner.invoke(cli, ["--config", str(config_dir), *args], input=input)

    return _run


def write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


def soap_call(method, **params):
    fields = "".join(f"<{name}>{escape(value)}</{name}>" for name, value in params.items())
    return (
        f'<soap:Envelope xmlns:soap="{SOAP_NS}"><soap:Body>'
        f'<{method} xmlns="{QBWC_NS}">{fields}</{method}>'
        "</soap:Body></soap:Envelope>"
    )


def soap_result(output, method):
    root = ElementTree.fromstring(output.strip())
    return root.findtext(f".//{{{QBWC_NS}}}{method}Result")


class TestGroup:
    """Tests for global options."""

    def test_version(self, run):
        result = run("--version")

        assert result.exit_code == 0
        assert "2.0.0" in result.output

    def test_log_options_reach_logging_setup(self, run, logging_calls):
        result = run("--log-level", "debug", "--log-format", "console", "wsdl")

        assert result.exit_code == 0
        assert logging_calls[-1] == {"level": "debug", "format_type": "console"}

    def test_logging_defaults_come_from_config(self, run, logging_calls):
        run("wsdl")

        assert logging_calls[-1] == {"level": "info", "format_type": "json"}

    def test_invalid_config(self, tmp_path):
        (tmp_path / "defaults.yaml").write_text("session:\n  backend: redis\n", encoding="utf-8")

        result = CliRunner().invoke(cli, ["--config", str(tmp_path), "health"])

        assert result.exit_code == 10
        payload = json.loads(result.output)
        assert payload["status"] == "error"
        assert "session.backend" in payload["message"]


class TestValidateCommand:
    def test_valid_request(self, run, tmp_path):
        path = write(tmp_path, "request.xml", VALID_REQUEST)

        result = run("validate", path, "--direction", "request", "--entity-type", "Customer")

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["status"] == "valid"
        assert payload["errors"] == []

    def test_invalid_response_from_stdin(self, run):
        result = run("validate", input="<QBXML><QBXMLMsgsRs></QBXMLMsgsRs></QBXML>")

        assert result.exit_code == 20
        payload = json.loads(result.output)
        assert payload["status"] == "invalid"
        assert payload["errors"][0]["code"] == "NO_RESPONSES"


class TestProcessCommand:
    def test_success(self, run, tmp_path):
        path = write(tmp_path, "customers.xml", CUSTOMER_RESPONSE)

        result = run("process", path, "--entity-type", "customer")

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["success"] is True
        assert [c["name"] for c in payload["data"]] == ["Acme", "Beta"]
        assert payload["metadata"]["record_count"] == 2

    def test_quickbooks_error(self, run, tmp_path):
        path = write(tmp_path, "error.xml", ERROR_RESPONSE)

        result = run("process", path)

        assert result.exit_code == 21
        assert json.loads(result.output)["errors"][0]["code"] == "3100"

    def test_entity_validation_flag(self, run, tmp_path):
        path = write(tmp_path, "bad.xml", CUSTOMER_RESPONSE.replace("ap@acme.example", "nope"))

        plain = run("process", path)
        checked = run("process", path, "--validate-entities")

        assert plain.exit_code == 0
        assert checked.exit_code == 21


class TestBatchCommand:
    def test_partial_batch(self, run, tmp_path):
        good = write(tmp_path, "good.xml", CUSTOMER_RESPONSE)
        bad = write(tmp_path, "bad.xml", ERROR_RESPONSE)

        result = run("batch", good, bad, "--max-concurrent", "1")

        assert result.exit_code == 21
        payload = json.loads(result.output)
        assert payload["status"] == "partial"
        assert payload["documents"] == [good, bad]
        assert payload["summary"]["successful"] == 1
        assert payload["summary"]["failed"] == 1

    def test_all_successful(self, run, tmp_path):
        good = write(tmp_path, "good.xml", CUSTOMER_RESPONSE)

        result = run("batch", good, good)

        assert result.exit_code == 0
        assert json.loads(result.output)["status"] == "success"


class TestHealthCommand:
    def test_healthy(self, run):
        result = run("health")

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["status"] == "healthy"
        assert payload["statistics"]["version"] == "2.0.0"


class TestRequestAndWsdlCommands:
    def test_request(self, run):
        result = run("request", "Vendor", "--request-id", "9")

        assert result.exit_code == 0
        assert '<VendorQueryRq requestID="9">' in result.output
        assert "<MaxReturned>100</MaxReturned>" in result.output
        assert '<?qbxml version="13.0"?>' in result.output

    def test_wsdl(self, run):
        result = run("wsdl", "--url", "https://relay.example/qbwc")

        assert result.exit_code == 0
        assert 'location="https://relay.example/qbwc"' in result.output


class TestSoapCommand:
    """Each invocation is one SOAP call; the file store links them."""

    def test_conversation_across_invocations(self, run, tmp_path):
        auth = run("soap", input=soap_call("authenticate", strUserName="alice", strPassword="secret"))
        ticket = soap_result(auth.output, "authenticate")

        request = run("soap", input=soap_call("sendRequestXML", ticket=ticket))
        closed = run("soap", input=soap_call("closeConnection", ticket=ticket))

        assert auth.exit_code == 0
        assert ticket and ticket != "nvu"
        assert (tmp_path / "sessions" / f"{ticket}.json").exists()
        assert "<CustomerQueryRq" in soap_result(request.output, "sendRequestXML")
        assert soap_result(closed.output, "closeConnection") == "OK"

    def test_fault(self, run):
        result = run("soap", input="not soap")

        assert result.exit_code == 30
        assert "faultstring" in result.output


class TestPurgeSessionsCommand:
    def test_purge(self, run, tmp_path):
        result = run("purge-sessions")

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["removed"] == 0
        assert payload["store_dir"] == str(tmp_path / "sessions")

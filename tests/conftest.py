"""Shared fixtures and sample documents."""

from __future__ import annotations

import pytest

from qbxml_relay.errors.retry import RetryExecutor, RetryPolicy

CUSTOMER_RESPONSE = """<?xml version="1.0" encoding="utf-8"?>
<QBXML>
  <QBXMLMsgsRs>
    <CustomerQueryRs requestID="7" statusCode="0" statusSeverity="Info" statusMessage="Status OK">
      <CustomerRet>
        <ListID>80000001-1234567890</ListID>
        <TimeCreated>2024-01-15T10:30:00-08:00</TimeCreated>
        <TimeModified>2024-02-01T09:00:00-08:00</TimeModified>
        <EditSequence>1705343400</EditSequence>
        <Name>Acme</Name>
        <FullName>Acme</FullName>
        <IsActive>true</IsActive>
        <CompanyName>Acme Corporation</CompanyName>
        <FirstName>Ada</FirstName>
        <LastName>Lovelace</LastName>
        <BillAddress>
          <Addr1>1 Main St</Addr1>
          <City>Springfield</City>
          <State>IL</State>
          <PostalCode>62701</PostalCode>
        </BillAddress>
        <Phone>555-123-4567</Phone>
        <Email>ap@acme.example</Email>
        <TermsRef>
          <ListID>20000-1</ListID>
          <FullName>Net 30</FullName>
        </TermsRef>
        <Balance>150.25</Balance>
        <CreditLimit>5000.00</CreditLimit>
      </CustomerRet>
      <CustomerRet>
        <ListID>80000002-1234567890</ListID>
        <Name>Beta</Name>
        <FullName>Beta</FullName>
        <IsActive>false</IsActive>
      </CustomerRet>
    </CustomerQueryRs>
  </QBXMLMsgsRs>
</QBXML>"""

ERROR_RESPONSE = """<?xml version="1.0" encoding="utf-8"?>
<QBXML>
  <QBXMLMsgsRs>
    <CustomerQueryRs requestID="1" statusCode="3100" statusSeverity="Error"
        statusMessage="The name &quot;Acme&quot; of the list element is already in use." />
  </QBXMLMsgsRs>
</QBXML>"""

VALID_REQUEST = """<?xml version="1.0" encoding="utf-8"?>
<?qbxml version="13.0"?>
<QBXML>
  <QBXMLMsgsRq onError="stopOnError">
    <CustomerQueryRq requestID="1">
      <MaxReturned>100</MaxReturned>
    </CustomerQueryRq>
  </QBXMLMsgsRq>
</QBXML>"""


class RecordingSleep:
    """Awaitable sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fast_executor(sleeper: RecordingSleep) -> RetryExecutor:
    policy = RetryPolicy(
        max_retries=3,
        initial_delay=1.0,
        max_delay=30.0,
        backoff_multiplier=2.0,
        retryable_codes=frozenset({"NETWORK_ERROR", "TIMEOUT", "QB_BUSY"}),
        jitter=False,
    )
    return RetryExecutor(policy, sleep=sleeper)

import uuid

import pytest

from caseforge.domain.rewards import CaseDefinition
from caseforge.testing import CaseFactory, FaultInjectingLedger
from caseforge.testing.fixtures import fault_ledger, manual_clock, memory_app  # noqa: F401


@pytest.fixture()
def user_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture()
def case(fault_ledger: FaultInjectingLedger) -> CaseDefinition:  # noqa: F811
    definition = CaseFactory().build(price=100, size=5)
    fault_ledger.register_case(definition)
    return definition

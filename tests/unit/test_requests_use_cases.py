import asyncio
from dataclasses import replace
from datetime import datetime

import pytest

from app.requests.application.use_cases import (
    ApproveRequestCommand,
    ApproveRequestUseCase,
    CreateStockRequestCommand,
    CreateStockRequestUseCase,
    FinalizeRequestCommand,
    FinalizeRequestUseCase,
    GetRequestDetailsUseCase,
    ListStockRequestsQuery,
    ListStockRequestsUseCase,
    RejectRequestCommand,
    RejectRequestUseCase,
    RequestLineInput,
    RequestMetadata,
    UpdateStockRequestCommand,
    UpdateStockRequestUseCase,
)
from app.requests.domain.errors import (
    DuplicateRequestNumber,
    FinalizeValidationError,
    InvalidRequest,
    InvalidTransition,
    NotFound,
    PermissionDenied,
)
from app.requests.domain.lifecycle import FinalizeLineInput
from app.requests.domain.models import (
    RequestDetails,
    RequestLine,
    StockRequest,
    StockSnapshot,
    UserSummary,
)


NOW = datetime(2026, 1, 17, 10, 0, 0)

ADMIN = UserSummary(id="admin-1", name="Super Admin", role="superadmin")
APPROVER = UserSummary(id="appr-1", name="Ann Approver", role="approver")
OTHER_APPROVER = UserSummary(id="appr-2", name="Otto Approver", role="approver")
ISSUER = UserSummary(id="iss-1", name="Ivy Issuer", role="issuer")
REQUESTER = UserSummary(id="req-1", name="Rick Requester", role="requester")


class FakeStockRequestRepository:
    def __init__(self) -> None:
        self.users = {}
        self.items = {}
        self.requests = {}
        self.approvals = []
        self.rejections = []
        self.audit_entries = []
        self.applied_plans = []
        self.status_changes = []
        self.committed = 0
        self.rolled_back = 0
        self.last_filters = None
        self.fail_on_apply = False
        self.sequences = {}
        self.taken_numbers = 0

    def add_user(self, user: UserSummary) -> None:
        self.users[user.id] = user

    def add_item(self, item_id: str, name: str, quantity: int) -> None:
        self.items[item_id] = StockSnapshot(id=item_id, name=name, quantity=quantity)

    async def get_user(self, user_id):
        return self.users.get(user_id)

    async def resolve_item(self, item_id, item_name):
        if item_id:
            return self.items.get(item_id)
        for item in self.items.values():
            if item.name.lower() == (item_name or "").strip().lower():
                return item
        return None

    async def get_next_request_number(self, request_type):
        seq = self.sequences.get(request_type, 0) + 1
        self.sequences[request_type] = seq
        prefix = "RET-" if request_type == "item_return" else "REQ-"
        return f"{prefix}{seq:05d}", seq

    async def add_request(self, request):
        self.requests[request.id] = request

    async def replace_request(self, request):
        self.requests[request.id] = request

    async def get_request(self, request_id, for_update=False):
        request = self.requests.get(request_id)
        if request is None:
            return None
        lines = [
            replace(line, current_stock=self.items[line.item_id].quantity)
            if line.item_id in self.items else line
            for line in request.items
        ]
        return replace(request, items=lines)

    async def get_request_details(self, request_id):
        request = await self.get_request(request_id)
        if request is None:
            return None
        return RequestDetails(
            request=request,
            approvals=[a for a in self.approvals if a.request_id == request_id],
            rejections=[r for r in self.rejections if r.request_id == request_id],
        )

    async def list_requests(self, filters):
        self.last_filters = filters
        return list(self.requests.values())

    async def add_approval(self, approval):
        self.approvals.append(approval)

    async def add_rejection(self, rejection):
        self.rejections.append(rejection)

    async def lock_stock(self, item_ids):
        return {item_id: self.items[item_id] for item_id in item_ids if item_id in self.items}

    async def apply_finalize(self, request_id, plan):
        if self.fail_on_apply:
            raise RuntimeError("database went away")
        self.applied_plans.append(plan)
        for item_id, delta in plan.stock_adjustments.items():
            item = self.items[item_id]
            self.items[item_id] = replace(item, quantity=item.quantity + delta)

    async def set_status(self, request_id, status, updated_at, release_by=None):
        self.status_changes.append((request_id, status))
        request = self.requests[request_id]
        self.requests[request_id] = replace(
            request,
            status=status,
            updated_at=updated_at,
            release_by=release_by if release_by is not None else request.release_by,
        )

    async def add_audit_entry(self, entry):
        self.audit_entries.append(entry)

    async def commit(self):
        if self.taken_numbers:
            self.taken_numbers -= 1
            raise DuplicateRequestNumber("Request number is already taken")
        self.committed += 1

    async def rollback(self):
        self.rolled_back += 1


def run(coro):
    return asyncio.run(coro)


def make_repo() -> FakeStockRequestRepository:
    repo = FakeStockRequestRepository()
    for user in (ADMIN, APPROVER, OTHER_APPROVER, ISSUER, REQUESTER):
        repo.add_user(user)
    repo.add_item("cable", "Fiber Cable", 10)
    repo.add_item("router", "Router", 3)
    return repo


def ids():
    counter = iter(range(1, 1000))
    return lambda: f"id-{next(counter)}"


def seed_request(repo, status="approved", type="material_request", approver_id="appr-1", lines=None):
    lines = lines or [
        RequestLine(item_id="cable", item_name="Fiber Cable", quantity_requested=4, item_index=0, id="line-1"),
        RequestLine(item_id="router", item_name="Router", quantity_requested=1, item_index=1, id="line-2"),
    ]
    request = StockRequest(
        id="request-1",
        request_number="REQ-00001",
        type=type,
        status=status,
        created_by="Rick Requester",
        created_by_id=REQUESTER.id,
        selected_approver_id=approver_id,
        created_at=NOW,
        updated_at=NOW,
        items=lines,
    )
    repo.requests[request.id] = request
    return request


# ==================== CREATE ====================

def test_create_request_persists_and_logs():
    repo = make_repo()
    use_case = CreateStockRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)
    command = CreateStockRequestCommand(
        items=[
            RequestLineInput(quantity=2, item_id="cable"),
            RequestLineInput(quantity=1, item_name="router"),
        ],
        selected_approver_id=APPROVER.id,
        metadata=RequestMetadata(project_name="North Loop", location="Site 4"),
    )

    request = run(use_case.execute(command, REQUESTER, "10.0.0.1"))

    assert repo.committed == 1
    assert request.status == "pending"
    assert request.request_number == "REQ-00001"
    assert request.created_by == "Rick Requester"
    assert request.team_leader_name == "Rick Requester"
    assert request.selected_approver_name == "Ann Approver"
    assert [line.item_id for line in request.items] == ["cable", "router"]
    assert request.items[1].item_index == 1

    entry = repo.audit_entries[0]
    assert entry.action == "create_request"
    assert entry.entity_type == "request"
    assert entry.entity_id == request.id
    assert entry.ip_address == "10.0.0.1"
    assert entry.details["item_count"] == 2


def test_create_retries_when_the_number_was_taken():
    repo = make_repo()
    repo.taken_numbers = 1
    use_case = CreateStockRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)
    command = CreateStockRequestCommand(
        items=[RequestLineInput(quantity=1, item_id="cable")],
        selected_approver_id=APPROVER.id,
    )

    request = run(use_case.execute(command, REQUESTER))

    assert request.request_number == "REQ-00002"
    assert repo.requests[request.id].request_number == "REQ-00002"
    assert repo.rolled_back == 1
    assert repo.committed == 1


def test_create_gives_up_after_repeated_number_conflicts():
    repo = make_repo()
    repo.taken_numbers = 5
    use_case = CreateStockRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)
    command = CreateStockRequestCommand(
        items=[RequestLineInput(quantity=1, item_id="cable")],
        selected_approver_id=APPROVER.id,
    )

    with pytest.raises(DuplicateRequestNumber):
        run(use_case.execute(command, REQUESTER))

    assert repo.rolled_back == 3
    assert repo.committed == 0

def test_create_item_return_uses_return_prefix():
    repo = make_repo()
    use_case = CreateStockRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)
    command = CreateStockRequestCommand(
        items=[RequestLineInput(quantity=1, item_id="router")],
        selected_approver_id=APPROVER.id,
        type="item_return",
    )

    request = run(use_case.execute(command, REQUESTER))

    assert request.request_number == "RET-00001"
    assert request.type == "item_return"


@pytest.mark.parametrize(
    "command, error",
    [
        (CreateStockRequestCommand(items=[], selected_approver_id="appr-1"), InvalidRequest),
        (CreateStockRequestCommand(items=[RequestLineInput(quantity=0, item_id="cable")], selected_approver_id="appr-1"), InvalidRequest),
        (CreateStockRequestCommand(items=[RequestLineInput(quantity=1, item_id="nope")], selected_approver_id="appr-1"), NotFound),
        (CreateStockRequestCommand(items=[RequestLineInput(quantity=1, item_id="cable")], selected_approver_id=""), InvalidRequest),
        (CreateStockRequestCommand(items=[RequestLineInput(quantity=1, item_id="cable")], selected_approver_id="req-1"), InvalidRequest),
        (CreateStockRequestCommand(items=[RequestLineInput(quantity=1, item_id="cable")], selected_approver_id="appr-1", type="loan"), InvalidRequest),
        (
            CreateStockRequestCommand(
                items=[RequestLineInput(quantity=1, item_id="cable"), RequestLineInput(quantity=2, item_name="Fiber Cable")],
                selected_approver_id="appr-1",
            ),
            InvalidRequest,
        ),
    ],
)
def test_create_request_rejects_bad_input(command, error):
    repo = make_repo()
    use_case = CreateStockRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(error):
        run(use_case.execute(command, REQUESTER))

    assert repo.requests == {}
    assert repo.audit_entries == []


# ==================== UPDATE ====================

def test_update_request_by_creator_replaces_lines():
    repo = make_repo()
    seed_request(repo, status="pending")
    use_case = UpdateStockRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)
    command = UpdateStockRequestCommand(
        request_id="request-1",
        metadata=RequestMetadata(location="Depot"),
        items=[RequestLineInput(quantity=5, item_id="cable")],
    )

    updated = run(use_case.execute(command, REQUESTER))

    assert updated.location == "Depot"
    assert len(updated.items) == 1
    assert updated.items[0].quantity_requested == 5
    assert repo.audit_entries[0].action == "update_request"
    assert repo.audit_entries[0].details["fields"] == ["location"]


def test_update_request_only_while_pending():
    repo = make_repo()
    seed_request(repo, status="approved")
    use_case = UpdateStockRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(InvalidRequest):
        run(use_case.execute(UpdateStockRequestCommand(request_id="request-1"), ADMIN))


def test_update_request_denies_other_requesters():
    repo = make_repo()
    seed_request(repo, status="pending")
    stranger = UserSummary(id="req-2", name="Someone Else", role="requester")
    use_case = UpdateStockRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(PermissionDenied):
        run(use_case.execute(UpdateStockRequestCommand(request_id="request-1"), stranger))


def test_approver_cannot_take_over_a_request_assigned_to_someone_else():
    repo = make_repo()
    seed_request(repo, status="pending")
    update = UpdateStockRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)
    approve = ApproveRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(PermissionDenied):
        run(update.execute(
            UpdateStockRequestCommand(request_id="request-1", selected_approver_id=OTHER_APPROVER.id),
            OTHER_APPROVER,
        ))
    with pytest.raises(PermissionDenied):
        run(approve.execute(ApproveRequestCommand("request-1", "Otto"), OTHER_APPROVER))

    assert repo.requests["request-1"].selected_approver_id == APPROVER.id
    assert repo.requests["request-1"].status == "pending"
    assert repo.audit_entries == []


def test_assigned_approver_can_edit_pending_request():
    repo = make_repo()
    seed_request(repo, status="pending")
    use_case = UpdateStockRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    updated = run(use_case.execute(
        UpdateStockRequestCommand(request_id="request-1", metadata=RequestMetadata(location="Yard")),
        APPROVER,
    ))

    assert updated.location == "Yard"


# ==================== LIST & DETAILS ====================

def test_list_requests_scopes_approvers_to_their_pending_requests():
    repo = make_repo()
    use_case = ListStockRequestsUseCase(repository=repo)
    query = ListStockRequestsQuery(status="pending")

    run(use_case.execute(query, APPROVER))
    assert repo.last_filters.pending_approver_id == APPROVER.id

    run(use_case.execute(query, ISSUER))
    assert repo.last_filters.pending_approver_id is None


def test_list_requests_clamps_limit_offset():
    repo = make_repo()
    use_case = ListStockRequestsUseCase(repository=repo, max_limit=200)

    run(use_case.execute(ListStockRequestsQuery(limit=999, offset=-5), ADMIN))

    assert repo.last_filters.limit == 200
    assert repo.last_filters.offset == 0


def test_request_details_missing():
    use_case = GetRequestDetailsUseCase(make_repo())

    with pytest.raises(NotFound):
        run(use_case.execute("missing"))


# ==================== APPROVE & REJECT ====================

def test_approve_pending_request():
    repo = make_repo()
    seed_request(repo, status="pending")
    use_case = ApproveRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    approved = run(use_case.execute(ApproveRequestCommand("request-1", "Ann Approver", "sig"), APPROVER))

    assert approved.status == "approved"
    assert repo.requests["request-1"].status == "approved"
    assert repo.approvals[0].approver_id == APPROVER.id
    assert repo.audit_entries[0].action == "approve_request"
    assert repo.committed == 1


def test_approve_requires_manager_role():
    repo = make_repo()
    seed_request(repo, status="pending")
    use_case = ApproveRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(PermissionDenied):
        run(use_case.execute(ApproveRequestCommand("request-1", "Rick"), REQUESTER))


def test_approver_cannot_approve_request_assigned_to_someone_else():
    repo = make_repo()
    seed_request(repo, status="pending")
    use_case = ApproveRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(PermissionDenied):
        run(use_case.execute(ApproveRequestCommand("request-1", "Otto"), OTHER_APPROVER))


def test_approve_twice_is_an_invalid_transition():
    repo = make_repo()
    seed_request(repo, status="approved")
    use_case = ApproveRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(InvalidTransition):
        run(use_case.execute(ApproveRequestCommand("request-1", "Ann"), APPROVER))

    assert repo.approvals == []


def test_reject_approved_request_records_reason():
    repo = make_repo()
    seed_request(repo, status="approved")
    use_case = RejectRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    rejected = run(use_case.execute(RejectRequestCommand("request-1", "Out of budget", "Ivy"), ISSUER))

    assert rejected.status == "rejected"
    assert rejected.reject_reason == "Out of budget"
    assert repo.audit_entries[0].details["previous_status"] == "approved"


def test_reject_requires_reason():
    repo = make_repo()
    seed_request(repo, status="pending")
    use_case = RejectRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(InvalidRequest):
        run(use_case.execute(RejectRequestCommand("request-1", "  ", "Ivy"), ISSUER))


def test_completed_request_cannot_be_rejected():
    repo = make_repo()
    seed_request(repo, status="completed")
    use_case = RejectRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(InvalidTransition):
        run(use_case.execute(RejectRequestCommand("request-1", "Too late", "Ivy"), ADMIN))


# ==================== FINALIZE ====================

def test_finalize_material_request_deducts_stock():
    repo = make_repo()
    seed_request(repo, status="approved")
    use_case = FinalizeRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)
    command = FinalizeRequestCommand(
        request_id="request-1",
        items=[FinalizeLineInput("cable", 4, 0), FinalizeLineInput("router", 1, 0)],
        released_by="Ivy",
    )

    finalized = run(use_case.execute(command, ISSUER))

    assert finalized.status == "completed"
    assert finalized.release_by == "Ivy"
    assert repo.items["cable"].quantity == 6
    assert repo.items["router"].quantity == 2
    assert [line.current_stock for line in finalized.items] == [6, 2]
    assert repo.audit_entries[0].details["stock_changes"] == {"cable": -4, "router": -1}
    assert repo.committed == 1
    assert repo.rolled_back == 0


def test_finalize_item_return_adds_stock():
    repo = make_repo()
    seed_request(repo, status="approved", type="item_return")
    use_case = FinalizeRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)
    command = FinalizeRequestCommand("request-1", [FinalizeLineInput("router", 2, 0)], "Ivy")

    run(use_case.execute(command, ADMIN))

    assert repo.items["router"].quantity == 5
    assert repo.items["cable"].quantity == 10


def test_finalize_over_stock_changes_nothing():
    repo = make_repo()
    seed_request(repo, status="approved")
    use_case = FinalizeRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)
    command = FinalizeRequestCommand(
        request_id="request-1",
        items=[FinalizeLineInput("cable", 4, 0), FinalizeLineInput("router", 5, 0)],
        released_by="Ivy",
    )

    with pytest.raises(FinalizeValidationError) as excinfo:
        run(use_case.execute(command, ISSUER))

    assert excinfo.value.errors[0]["item_id"] == "router"
    assert "exceeds available stock (3)" in excinfo.value.message
    assert repo.items["cable"].quantity == 10
    assert repo.items["router"].quantity == 3
    assert repo.requests["request-1"].status == "approved"
    assert repo.audit_entries == []
    assert repo.rolled_back == 1
    assert repo.committed == 0


def test_finalize_rolls_back_when_a_write_fails():
    repo = make_repo()
    repo.fail_on_apply = True
    seed_request(repo, status="approved")
    use_case = FinalizeRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(RuntimeError):
        run(use_case.execute(FinalizeRequestCommand("request-1", [FinalizeLineInput("cable", 1, 0)], "Ivy"), ISSUER))

    assert repo.rolled_back == 1
    assert repo.committed == 0


def test_finalize_requires_issuer_or_superadmin():
    repo = make_repo()
    seed_request(repo, status="approved")
    use_case = FinalizeRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(PermissionDenied):
        run(use_case.execute(FinalizeRequestCommand("request-1", [FinalizeLineInput("cable", 1, 0)], "Ann"), APPROVER))


def test_finalize_pending_request_is_an_invalid_transition():
    repo = make_repo()
    seed_request(repo, status="pending")
    use_case = FinalizeRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(InvalidTransition):
        run(use_case.execute(FinalizeRequestCommand("request-1", [FinalizeLineInput("cable", 1, 0)], "Ivy"), ISSUER))

    assert repo.rolled_back == 1


def test_finalize_requires_released_by():
    repo = make_repo()
    seed_request(repo, status="approved")
    use_case = FinalizeRequestUseCase(repository=repo, id_generator=ids(), clock=lambda: NOW)

    with pytest.raises(InvalidRequest):
        run(use_case.execute(FinalizeRequestCommand("request-1", [FinalizeLineInput("cable", 1, 0)], " "), ISSUER))

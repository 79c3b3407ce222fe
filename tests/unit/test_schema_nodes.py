"""
Unit tests for domain models.

Tests the Pydantic models for:
- Schema snapshots (TableNode, ColumnNode, RelationshipNode, SchemaSnapshot)
- Index documents (SchemaDocument, SchemaContext)
- SQL-side results (ExecutionOutcome, QueryResponse boundary shape)
"""

import pytest
from pydantic import ValidationError

from text2sql.domain.base_enums import ErrorKind, NodeType
from text2sql.domain.execution import CorrectionAttempt, ExecutionOutcome, GeneratedSql
from text2sql.domain.requests import QueryRequest
from text2sql.domain.responses import QueryResponse
from text2sql.domain.schema_documents import SchemaContext, SchemaDocument, ScoredDocument
from text2sql.domain.schema_nodes import ColumnNode, RelationshipNode, SchemaSnapshot, TableNode


def _snapshot() -> SchemaSnapshot:
    return SchemaSnapshot(
        database_name="shop",
        tables=[
            TableNode(table_name="customers", schema_name="public", columns=[
                ColumnNode(column_name="id", data_type="integer", is_primary_key=True, is_nullable=False),
                ColumnNode(column_name="name", data_type="text"),
            ]),
            TableNode(table_name="orders", schema_name="public", columns=[
                ColumnNode(column_name="id", data_type="integer", is_primary_key=True),
                ColumnNode(column_name="customer_id", data_type="integer", is_foreign_key=True),
            ]),
            TableNode(table_name="audit_log", schema_name="public"),
        ],
        relationships=[
            RelationshipNode(from_table="orders", from_column="customer_id", to_table="customers", to_column="id"),
        ],
    )


class TestSchemaNodes:
    """Test cases for the snapshot node models."""

    def test_column_node_defaults(self):
        column = ColumnNode(column_name="email", data_type="varchar")
        assert column.is_nullable is True
        assert column.is_primary_key is False
        assert column.is_foreign_key is False
        assert column.max_length is None

    def test_column_node_missing_required_fields(self):
        with pytest.raises(ValidationError) as exc_info:
            ColumnNode(column_name="email")  # type: ignore[call-arg]
        assert "data_type" in {error["loc"][0] for error in exc_info.value.errors()}

    def test_table_primary_keys(self):
        table = _snapshot().tables[0]
        assert table.primary_keys == ["id"]

    def test_get_table_is_case_insensitive(self):
        snapshot = _snapshot()
        assert snapshot.get_table("CUSTOMERS").table_name == "customers"
        assert snapshot.get_table("missing") is None

    def test_neighbours_both_directions(self):
        snapshot = _snapshot()
        assert snapshot.neighbours_of("orders") == ["customers"]
        assert snapshot.neighbours_of("customers") == ["orders"]
        assert snapshot.neighbours_of("audit_log") == []

    def test_snapshot_json_round_trip_keeps_tables(self):
        snapshot = _snapshot()
        restored = SchemaSnapshot.model_validate_json(snapshot.model_dump_json())
        assert [t.table_name for t in restored.tables] == ["customers", "orders", "audit_log"]


class TestSchemaDocuments:
    """Test cases for SchemaDocument and SchemaContext."""

    def test_relationship_document_belongs_to_both_tables(self):
        document = SchemaDocument(
            id="relationship:orders.customer_id->customers.id",
            kind=NodeType.RELATIONSHIP,
            content="orders.customer_id references customers.id",
            metadata={"from_table": "orders", "to_table": "customers"},
        )
        assert document.table_names == ["orders", "customers"]
        assert document.kind_rank == 2

    def test_self_reference_listed_once(self):
        document = SchemaDocument(
            id="relationship:employees.manager_id->employees.id",
            kind=NodeType.RELATIONSHIP,
            content="employees.manager_id references employees.id",
            metadata={"from_table": "employees", "to_table": "employees"},
        )
        assert document.table_names == ["employees"]

    def test_documents_are_frozen(self):
        document = SchemaDocument(id="table:public.customers", kind=NodeType.TABLE, content="x")
        with pytest.raises(ValidationError):
            document.content = "y"  # type: ignore[misc]

    def test_context_helpers(self):
        column = SchemaDocument(
            id="column:public.customers.email",
            kind=NodeType.COLUMN,
            content="Column email",
            metadata={"table_name": "customers", "column_name": "email"},
        )
        context = SchemaContext(
            documents=[ScoredDocument(document=column, score=0.8)],
            table_names=["customers"],
            table_scores={"customers": 0.8},
        )
        assert not context.is_empty
        assert context.column_names() == ["customers.email"]
        assert context.documents_for("Customers") == [column]
        assert SchemaContext().is_empty


class TestExecutionModels:
    """Test cases for GeneratedSql, ExecutionOutcome and QueryResponse."""

    def test_generated_sql_rejects_empty_statement(self):
        with pytest.raises(ValidationError):
            GeneratedSql(statement_text="")

    def test_outcome_factories(self):
        ok = ExecutionOutcome.succeeded([{"n": 1}], attempts=2)
        assert ok.success and ok.row_count == 1 and ok.attempts == 2

        failed = ExecutionOutcome.failed(ErrorKind.SYNTAX, "no such column: nme")
        assert not failed.success
        assert failed.error_kind == ErrorKind.SYNTAX
        assert failed.rows is None

    def test_boundary_response_uses_camel_case(self):
        response = QueryResponse(
            success=True,
            sql_generated="SELECT COUNT(*) AS n FROM customers",
            execution_outcome=ExecutionOutcome.succeeded([{"n": 3}]),
            answer_text="There are 3 customers.",
            processing_steps=["Normalizing", "Succeeded: 1 rows"],
            was_corrected=True,
            correction_attempt_count=1,
            correction_history=[CorrectionAttempt(
                attempt_number=1, prior_sql="SELECT", prior_error="e", corrected_sql="SELECT 1",
            )],
        )

        payload = response.to_api_response().model_dump(by_alias=True)

        assert payload == {
            "success": True,
            "sqlGenerated": "SELECT COUNT(*) AS n FROM customers",
            "result": [{"n": 3}],
            "rowCount": 1,
            "errorMessage": None,
            "processingSteps": ["Normalizing", "Succeeded: 1 rows"],
            "answer": "There are 3 customers.",
            "wasCorrected": True,
            "correctionAttempts": 1,
        }

    def test_failed_response_has_no_rows(self):
        response = QueryResponse(
            success=False,
            execution_outcome=ExecutionOutcome.failed(ErrorKind.SYNTAX, "bad"),
            error_message="bad",
        )
        api = response.to_api_response()
        assert api.result is None
        assert api.row_count == 0
        assert api.answer is None

    def test_query_request_accepts_camel_case(self):
        request = QueryRequest.model_validate({"question": "Có bao nhiêu khách hàng?", "conversationId": "c-1"})
        assert request.conversation_id == "c-1"

    def test_query_request_rejects_empty_question(self):
        with pytest.raises(ValidationError):
            QueryRequest(question="")

from tests.records.base import *  # noqa: F401,F403

from fastapi.testclient import TestClient

from recordhub.api.deps import get_call_context, get_registry, model_schemas
from recordhub.core.errors import QUERY_CANCELLED, QUERY_DEADLINE, QueryError, SchemaError
from recordhub.core.http import status_for
from recordhub.main import app
from recordhub.services.repository import RepositoryRegistry


class RecordsApiTests(RecordStoreBase):
    def setUp(self):
        super().setUp()
        self.registry = RepositoryRegistry({"clients": self.sql_repo})
        app.dependency_overrides[get_registry] = lambda: self.registry
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()
        super().tearDown()

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_query_returns_items_and_pagination(self):
        response = self.client.post(
            "/api/records/clients/query",
            json={
                "filters": {"filters": [{"field": "city", "stringFilter": {"value": "paris"}}]},
                "sort": {"fields": [{"field": "name"}]},
                "pagination": {"limit": 2, "offset": {"page": 1}},
            },
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([row["name"] for row in body["items"]], ["Dora Explorer", "John Doe"])
        self.assertEqual(body["pagination"]["totalItems"], 3)
        self.assertEqual(body["pagination"]["totalPages"], 2)
        self.assertTrue(body["pagination"]["hasNext"])
        self.assertTrue(body["pagination"]["nextToken"])
        self.assertIn("X-Request-ID", response.headers)

    def test_query_without_body_uses_defaults(self):
        response = self.client.post("/api/records/clients/query")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["pagination"]["totalItems"], 11)

    def test_validation_errors_map_to_400(self):
        for payload in (
            {"filters": [{"field": "nickname", "stringFilter": {"value": "x"}}]},
            {"pagination": {"limit": 500}},
            {"filters": [{"field": "name"}]},
        ):
            with self.subTest(payload=payload):
                response = self.client.post("/api/records/clients/query", json=payload)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_unknown_table_is_404(self):
        response = self.client.post("/api/records/planets/query", json={})
        self.assertEqual(response.status_code, 404)

    def test_crud_round_trip(self):
        created = self.client.post("/api/records/clients", json={"name": "Ivan", "city": "Riga", "creditLimit": 12.5})
        self.assertEqual(created.status_code, 201)
        record_id = created.json()["id"]
        self.assertTrue(created.json()["active"])
        self.assertEqual(created.json()["credit_limit"], 12.5)

        updated = self.client.patch(f"/api/records/clients/{record_id}", json={"city": "Tallinn"})
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["city"], "Tallinn")

        deleted = self.client.delete(f"/api/records/clients/{record_id}")
        self.assertEqual(deleted.status_code, 204)
        missing = self.client.get(f"/api/records/clients/{record_id}")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["code"], "RECORD_NOT_FOUND")

        restored = self.client.patch(f"/api/records/clients/{record_id}", json={"active": True})
        self.assertEqual(restored.status_code, 200)
        self.assertEqual(self.client.get(f"/api/records/clients/{record_id}").status_code, 200)

        hard = self.client.delete(f"/api/records/clients/{record_id}/hard")
        self.assertEqual(hard.status_code, 204)
        self.assertEqual(self.client.delete(f"/api/records/clients/{record_id}/hard").status_code, 404)

    def test_cancelled_context_maps_to_503(self):
        def cancelled_context():
            ctx = CallContext.background()
            ctx.cancel()
            return ctx

        app.dependency_overrides[get_call_context] = cancelled_context
        response = self.client.get(f"/api/records/clients/{CLIENT_SEED[0]['id']}")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["code"], "QUERY_CANCELLED")

    def test_expired_context_maps_to_504(self):
        app.dependency_overrides[get_call_context] = lambda: CallContext(deadline=0.0)
        response = self.client.post("/api/records/clients/query", json={})
        self.assertEqual(response.status_code, 504)
        self.assertEqual(response.json()["code"], "QUERY_DEADLINE_EXCEEDED")

    def test_model_schemas_cover_the_sample_tables(self):
        tables = [schema.table for schema in model_schemas()]
        self.assertEqual(tables, ["clients", "inventory_items", "price_plans", "roles"])
        with self.assertRaises(ValueError):
            model_schemas(["clients", "planets"])

    def test_malformed_create_is_a_400(self):
        response = self.client.post("/api/records/clients", json={"name": "Typo", "priority": "abc"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        response = self.client.post("/api/records/clients", json={"email": "nobody@example.com"})
        self.assertEqual(response.status_code, 400)

    def test_status_codes_for_each_error_kind(self):
        self.assertEqual(status_for(SchemaError("no table")), 500)
        self.assertEqual(status_for(QueryError("slow", reason=QUERY_DEADLINE)), 504)
        self.assertEqual(status_for(QueryError("stop", reason=QUERY_CANCELLED)), 503)
        self.assertEqual(status_for(QueryError("boom")), 503)

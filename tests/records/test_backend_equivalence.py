from tests.records.base import *  # noqa: F401,F403

from recordhub.core.errors import ValidationError


def _sf(field, value, operator="EQUALS", case_sensitive=False):
    return {"field": field, "stringFilter": {"value": value, "operator": operator, "caseSensitive": case_sensitive}}


EQUIVALENCE_REQUESTS = {
    "default": {},
    "contains_ci": {"filters": {"filters": [_sf("name", "oe", "CONTAINS")]}},
    "contains_cs": {"filters": {"filters": [_sf("name", "Doe", "CONTAINS", True)]}},
    "contains_cs_lower": {"filters": {"filters": [_sf("name", "smith", "CONTAINS", True)]}},
    "starts_with_cs": {"filters": {"filters": [_sf("name", "J", "STARTS_WITH", True)]}},
    "ends_with_ci": {"filters": {"filters": [_sf("email", "EXAMPLE.COM", "ENDS_WITH")]}},
    "ends_with_cs": {"filters": {"filters": [_sf("email", "example.com", "ENDS_WITH", True)]}},
    "equals_ci": {"filters": {"filters": [_sf("city", "PARIS")]}},
    "equals_cs": {"filters": {"filters": [_sf("city", "Paris", "EQUALS", True)]}},
    "not_equals_skips_null": {"filters": {"filters": [_sf("city", "Paris", "NOT_EQUALS", True)]}},
    "regex": {"filters": {"filters": [_sf("name", "^[A-J][a-z]+ (Doe|Roe)$", "REGEX", True)]}},
    "regex_ci": {"filters": {"filters": [_sf("name", "smith$", "REGEX")]}},
    "like_percent_literal": {"filters": {"filters": [_sf("name", "100%", "CONTAINS")]}},
    "like_underscore_literal": {"filters": {"filters": [_sf("name", "l_d", "CONTAINS")]}},
    "number_gt": {"filters": {"filters": [{"field": "priority", "numberFilter": {"value": 2, "operator": "GT"}}]}},
    "number_not_equals": {
        "filters": {"filters": [{"field": "priority", "numberFilter": {"value": 3, "operator": "NOT_EQUALS"}}]}
    },
    "number_lte_float": {
        "filters": {"filters": [{"field": "credit_limit", "numberFilter": {"value": 250, "operator": "LTE"}}]}
    },
    "range_half_open": {
        "filters": {
            "filters": [
                {"field": "credit_limit", "rangeFilter": {"min": 100, "max": 500, "includeMin": True, "includeMax": False}}
            ]
        }
    },
    "range_closed": {
        "filters": {
            "filters": [
                {"field": "credit_limit", "rangeFilter": {"min": 100, "max": 500, "includeMin": True, "includeMax": True}}
            ]
        }
    },
    "boolean": {"filters": {"filters": [{"field": "vip", "booleanFilter": {"value": True}}]}},
    "boolean_false": {"filters": {"filters": [{"field": "vip", "booleanFilter": {"value": False}}]}},
    "list_in_strings": {"filters": {"filters": [{"field": "city", "listFilter": {"values": ["Paris", "Berlin"]}}]}},
    "list_not_in": {
        "filters": {"filters": [{"field": "city", "listFilter": {"values": ["Paris"], "operator": "NOT_IN"}}]}
    },
    "list_in_numbers": {"filters": {"filters": [{"field": "priority", "listFilter": {"values": ["1", "3"]}}]}},
    "list_in_bools": {"filters": {"filters": [{"field": "vip", "listFilter": {"values": ["true"]}}]}},
    "list_in_uncoercible": {"filters": {"filters": [{"field": "priority", "listFilter": {"values": ["high"]}}]}},
    "list_empty": {"filters": {"filters": [{"field": "city", "listFilter": {"values": []}}]}},
    "date_equals_day": {"filters": {"filters": [{"field": "date_created", "dateFilter": {"value": "2024-03-02"}}]}},
    "date_before": {
        "filters": {
            "filters": [{"field": "date_created", "dateFilter": {"value": "2024-03-02T09:00:00Z", "operator": "BEFORE"}}]
        }
    },
    "date_after_offset": {
        "filters": {
            "filters": [
                {"field": "date_created", "dateFilter": {"value": "2024-03-03T12:00:00+03:00", "operator": "AFTER"}}
            ]
        }
    },
    "date_between": {
        "filters": {
            "filters": [
                {
                    "field": "date_created",
                    "dateFilter": {
                        "value": "2024-03-01T14:00:00Z",
                        "operator": "BETWEEN",
                        "rangeEnd": "2024-03-03T09:00:00Z",
                    },
                }
            ]
        }
    },
    "date_between_without_end": {
        "filters": {
            "filters": [{"field": "date_created", "dateFilter": {"value": "2024-03-02", "operator": "BETWEEN"}}]
        }
    },
    "and_logic": {
        "filters": {
            "filters": [
                _sf("city", "paris"),
                {"field": "vip", "booleanFilter": {"value": True}},
            ]
        }
    },
    "or_logic": {
        "filters": {
            "logic": "OR",
            "filters": [
                _sf("city", "Berlin", "EQUALS", True),
                {"field": "priority", "numberFilter": {"value": 5, "operator": "GTE"}},
            ],
        }
    },
    "or_logic_only_noops": {
        "filters": {"logic": "OR", "filters": [{"field": "city", "listFilter": {"values": []}}]}
    },
    "sort_priority_asc": {"sort": {"fields": [{"field": "priority"}]}},
    "sort_priority_desc": {"sort": {"fields": [{"field": "priority", "direction": "DESC"}]}},
    "sort_priority_nulls_first": {
        "sort": {"fields": [{"field": "priority", "direction": "ASC", "nullOrder": "NULLS_FIRST"}]}
    },
    "sort_priority_desc_nulls_last": {
        "sort": {"fields": [{"field": "priority", "direction": "DESC", "nullOrder": "NULLS_LAST"}]}
    },
    "sort_city_then_name": {
        "sort": {"fields": [{"field": "city"}, {"field": "name", "direction": "DESC"}]}
    },
    "sort_vip_then_credit": {
        "sort": {"fields": [{"field": "vip", "direction": "DESC"}, {"field": "credit_limit"}]}
    },
    "sort_date_created_asc": {"sort": {"fields": [{"field": "date_created"}]}},
    "page_two": {"pagination": {"limit": 4, "offset": {"page": 2}}},
    "page_beyond": {"pagination": {"limit": 4, "offset": {"page": 9}}},
    "cursor_first": {"pagination": {"limit": 3, "cursor": {"token": ""}}},
    "search_default_fields": {"search": {"query": "smith"}},
    "search_two_terms": {"search": {"query": "doe, paris!", "searchFields": ["name", "city"]}},
    "search_weighted": {
        "search": {"query": "example doe", "searchFields": ["name", "email"], "fieldWeights": {"email": 0.5}}
    },
    "search_max_results": {
        "search": {"query": "example", "searchFields": ["email"], "maxResults": 5},
        "pagination": {"limit": 2, "offset": {"page": 3}},
    },
    "search_with_filter_and_sort": {
        "filters": {"filters": [{"field": "priority", "numberFilter": {"value": 1, "operator": "GT"}}]},
        "sort": {"fields": [{"field": "name"}]},
        "search": {"query": "doe"},
    },
    "search_literal_wildcard": {"search": {"query": "100%"}},
    "search_fuzzy": {"search": {"query": "smoth", "searchFields": ["name"], "enableFuzzy": True}},
    "search_fuzzy_all_fields": {"search": {"query": "berln the zq", "enableFuzzy": True, "maxResults": 3}},
    "search_without_highlights": {"search": {"query": "doe", "enableHighlighting": False}},
}


class BackendEquivalenceTests(RecordStoreBase):
    def _assert_same(self, name, payload):
        sql_result = self.sql_repo.list(self.ctx, payload)
        memory_result = self.memory_repo.list(self.ctx, payload)
        self.assertEqual(
            [row["id"] for row in sql_result.items],
            [row["id"] for row in memory_result.items],
            name,
        )
        self.assertEqual(sql_result.items, memory_result.items, name)
        self.assertEqual(sql_result.pagination, memory_result.pagination, name)
        self.assertEqual(sql_result.search_results, memory_result.search_results, name)
        self.assertEqual(sql_result.search_metrics, memory_result.search_metrics, name)
        return sql_result

    def test_request_grid_matches_across_backends(self):
        for name, payload in EQUIVALENCE_REQUESTS.items():
            with self.subTest(request=name):
                self._assert_same(name, payload)

    def test_cursor_walk_matches_across_backends(self):
        payload = {"pagination": {"limit": 4, "cursor": {"token": ""}}}
        seen = []
        while True:
            result = self._assert_same("cursor walk", payload)
            seen.extend(row["id"] for row in result.items)
            if not result.pagination.has_next:
                break
            payload = {"pagination": {"limit": 4, "cursor": {"token": result.pagination.next_token}}}
        self.assertEqual(len(seen), 11)
        self.assertEqual(len(set(seen)), 11)

    def test_default_order_is_newest_first_and_excludes_inactive(self):
        result = self._assert_same("default", {})
        ids = [row["id"] for row in result.items]
        self.assertEqual(ids[0], CLIENT_SEED[-1]["id"])
        self.assertNotIn(CLIENT_SEED[8]["id"], ids)
        # equal date_created, tie broken by id descending
        self.assertEqual(ids[:2], [CLIENT_SEED[11]["id"], CLIENT_SEED[10]["id"]])

    def test_null_values_fail_negative_filters_in_both_backends(self):
        result = self._assert_same("not equals", EQUIVALENCE_REQUESTS["not_equals_skips_null"])
        names = {row["name"] for row in result.items}
        self.assertNotIn("Bob Smith", names)
        self.assertIn("Jane Roe", names)

    def test_written_values_are_coerced_the_same_way(self):
        payload = {"id": "typed-1", "name": 42, "priority": "7", "creditLimit": "12.5", "vip": "yes"}
        created = {
            "sql": self.sql_repo.create(self.ctx, payload),
            "memory": self.memory_repo.create(self.ctx, payload),
        }
        for backend_name, record in created.items():
            with self.subTest(backend=backend_name):
                self.assertEqual(record["name"], "42")
                self.assertEqual(record["priority"], 7)
                self.assertEqual(record["credit_limit"], 12.5)
                self.assertIs(record["vip"], True)

        result = self._assert_same(
            "coerced number",
            {"filters": [{"field": "priority", "numberFilter": {"value": 6, "operator": "GT"}}]},
        )
        self.assertEqual([row["id"] for row in result.items], ["typed-1"])

    def test_malformed_writes_are_rejected_before_any_statement(self):
        payloads = (
            {"name": "Typo", "priority": "abc"},
            {"name": "Typo", "vip": "maybe"},
            {"name": "Typo", "creditLimit": "nan"},
            {"name": ["Typo"]},
            {"name": None},
            {"email": "nobody@example.com"},
        )
        for backend_name, repo in (("sql", self.sql_repo), ("memory", self.memory_repo)):
            for payload in payloads:
                with self.subTest(backend=backend_name, payload=payload):
                    self.recorder.clear()
                    with self.assertRaises(ValidationError):
                        repo.create(self.ctx, payload)
                    self.assertEqual(self.recorder.touching("clients"), [])

            with self.subTest(backend=backend_name, update="null name"):
                with self.assertRaises(ValidationError):
                    repo.update(self.ctx, CLIENT_SEED[0]["id"], {"name": None})

        self._assert_same("default after rejected writes", {})

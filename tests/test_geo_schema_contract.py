import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
MIGRATION = ROOT / "geoimport" / "sql" / "migrations" / "0001_geo_reference_tables.sql"


class GeoSchemaContractTests(unittest.TestCase):
    def test_children_reference_parents_by_code(self) -> None:
        text = MIGRATION.read_text(encoding="utf-8")
        self.assertIn("province_code text NOT NULL REFERENCES geo.province (code)", text)
        self.assertIn("city_code text NOT NULL REFERENCES geo.city (code)", text)
        self.assertIn("district_code text NOT NULL REFERENCES geo.district (code)", text)
        self.assertIn("village_code text NOT NULL REFERENCES geo.village (code)", text)

    def test_codes_are_text_not_numbers(self) -> None:
        text = MIGRATION.read_text(encoding="utf-8")
        self.assertEqual(5, text.count("code text PRIMARY KEY") + text.count("id bigint GENERATED"))
        self.assertNotIn("code integer", text)

    def test_postal_codes_unique_per_village(self) -> None:
        text = MIGRATION.read_text(encoding="utf-8")
        self.assertIn("UNIQUE (village_code, postal_code)", text)
        self.assertIn("CHECK (postal_code ~ '^[0-9]+$')", text)

    def test_city_type_is_closed_set(self) -> None:
        text = MIGRATION.read_text(encoding="utf-8")
        self.assertIn("CHECK (type IN ('kota', 'kabupaten'))", text)
        self.assertIn("DEFAULT 'kabupaten'", text)


if __name__ == "__main__":
    unittest.main()

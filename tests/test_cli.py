import os
import sys
import json
import unittest
from unittest import mock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import cli
from fitness_store import FitnessStore


class CLITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "cli_test.db"
        self.backup_path = "cli_backup.db"
        self.out_dir = "cli_out"
        for path in (self.db_path, self.backup_path):
            if os.path.exists(path):
                os.remove(path)
        os.makedirs(self.out_dir, exist_ok=True)

    def tearDown(self) -> None:
        for path in (self.db_path, self.backup_path):
            if os.path.exists(path):
                os.remove(path)
        for name in os.listdir(self.out_dir):
            os.remove(os.path.join(self.out_dir, name))
        os.rmdir(self.out_dir)

    def test_demo_export_import_analytics(self) -> None:
        cli.demo_data(self.db_path, "demo")
        store = FitnessStore.from_path(self.db_path)
        store.load_session("demo")
        self.assertEqual(len(store.state.history), 1)
        self.assertEqual(store.state.history[0].duration, 45 * 60)
        plan = store.state.plans[0]

        path = cli.export_plan(self.db_path, "demo", plan.id, self.out_dir)
        self.assertTrue(path.endswith("gymrat-plan-Demo_Day.json"))
        with open(path, encoding="utf-8") as f:
            self.assertEqual(json.load(f)["exercises"][1]["planDetails"], {"duration": 10})

        self.assertTrue(cli.import_plan(self.db_path, "friend", path))
        friend = FitnessStore.from_path(self.db_path)
        friend.load_session("friend")
        self.assertEqual([p.name for p in friend.state.plans], ["Demo Day"])

        summary = cli.analytics(self.db_path, "demo")
        self.assertEqual(summary["totalSets"], 2)
        self.assertEqual(summary["totalVolume"], 1025)
        self.assertEqual(summary["cardioBests"][0]["longestDuration"], 600)

    def test_backup_and_restore(self) -> None:
        cli.demo_data(self.db_path, "demo")
        cli.backup_db(self.db_path, self.backup_path)
        os.remove(self.db_path)
        cli.restore_db(self.backup_path, self.db_path)
        store = FitnessStore.from_path(self.db_path)
        store.load_session("demo")
        self.assertEqual(len(store.state.history), 1)

    def test_main_dispatches_analytics(self) -> None:
        argv = ["cli.py", "analytics", "--db", self.db_path, "--range", "week"]
        with mock.patch.object(sys, "argv", argv), mock.patch("builtins.print") as out:
            cli.main()
        self.assertEqual(json.loads(out.call_args[0][0])["totalWorkouts"], 0)


if __name__ == "__main__":
    unittest.main()

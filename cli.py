import argparse
import datetime
import json
import shutil
import time

from client import FitnessClient
from fitness_store import FitnessStore
from models import ExerciseCategory, ExerciseType, PlanExercise
from planner_service import PlannerService
from session_service import WorkoutSession
from stats_service import compute_analytics, filter_history

DEMO_USER = "demo"


def _store(db_path: str, user_id: str) -> FitnessStore:
    store = FitnessStore.from_path(db_path)
    store.load_session(user_id)
    return store


def export_plan(db_path: str, user_id: str, plan_id: str, output_dir: str = ".") -> str:
    store = _store(db_path, user_id)
    planner = PlannerService(store)
    data = planner.export_plan_json(plan_id)
    out_path = f"{output_dir}/{planner.export_filename(store.find_plan(plan_id))}"
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(data)
    return out_path


def import_plan(db_path: str, user_id: str, path: str) -> bool:
    with open(path, "r", encoding="utf-8") as f:
        result = PlannerService(_store(db_path, user_id)).import_plan_json(f.read())
    print(result.message)
    return result.ok


def analytics(db_path: str, user_id: str, time_range: str = "all") -> dict:
    store = _store(db_path, user_id)
    summary = compute_analytics(
        filter_history(store.state.history, time_range),
        store.state.exercises,
        full_history=store.state.history,
    )
    return summary.to_dict()


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def benchmark(url: str, runs: int = 10) -> None:
    client = FitnessClient(url, DEMO_USER)
    times: list[float] = []
    for _ in range(runs):
        t0 = time.time()
        client.health()
        times.append(time.time() - t0)
    avg = sum(times) / len(times)
    print(f"Average /health response time over {runs} runs: {avg:.4f}s")


def demo_data(db_path: str, user_id: str = DEMO_USER) -> None:
    """Populate the database with a demo plan and workout if empty."""
    store = _store(db_path, user_id)
    if store.state.history:
        print("Database already contains workouts")
        return
    bench = store.add_exercise(
        "Bench Press", ExerciseCategory.CHEST.value, ExerciseType.STRENGTH.value
    )
    run = store.add_exercise(
        "Running", ExerciseCategory.CARDIO.value, ExerciseType.CARDIO.value
    )
    plan = store.add_plan(
        "Demo Day",
        [
            PlanExercise(exercise_id=bench.id, number_of_sets=3, rep_range="8-12"),
            PlanExercise(exercise_id=run.id, duration=600),
        ],
    )
    started = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(hours=1)
    times = iter([started, started + datetime.timedelta(minutes=45)])
    session = WorkoutSession.start(plan, store.state.exercises, clock=lambda: next(times))
    session.record_set(bench.id, 0, "100", "5")
    session.record_set(bench.id, 1, "105", "5")
    session.record_cardio(run.id, minutes="10", distance="2")
    store.add_workout_to_history(session.finish())
    print("Demo data inserted")


def main() -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export-plan")
    exp.add_argument("--db", default="fitness.db")
    exp.add_argument("--user", default=DEMO_USER)
    exp.add_argument("--plan", required=True)
    exp.add_argument("--out", default=".")

    imp = sub.add_parser("import-plan")
    imp.add_argument("--db", default="fitness.db")
    imp.add_argument("--user", default=DEMO_USER)
    imp.add_argument("--file", required=True)

    stats = sub.add_parser("analytics")
    stats.add_argument("--db", default="fitness.db")
    stats.add_argument("--user", default=DEMO_USER)
    stats.add_argument(
        "--range", dest="time_range", choices=["all", "month", "week", "today"], default="all"
    )

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="fitness.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="fitness.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="fitness.db")
    demo.add_argument("--user", default=DEMO_USER)

    bench = sub.add_parser("benchmark")
    bench.add_argument("--url", default="http://localhost:8000")
    bench.add_argument("--runs", type=int, default=10)

    args = parser.parse_args()

    if args.cmd == "export-plan":
        print(export_plan(args.db, args.user, args.plan, args.out))
    elif args.cmd == "import-plan":
        if not import_plan(args.db, args.user, args.file):
            raise SystemExit(1)
    elif args.cmd == "analytics":
        print(json.dumps(analytics(args.db, args.user, args.time_range), indent=2))
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "demo":
        demo_data(args.db, args.user)
    elif args.cmd == "benchmark":
        benchmark(args.url, args.runs)


if __name__ == "__main__":
    main()

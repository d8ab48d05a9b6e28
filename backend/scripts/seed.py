#!/usr/bin/env python3
"""
Seed script to generate a large WBS + dependency network for performance testing.

Generates a project of N tasks with realistic structure:
- A WBS of phases, work packages and activities ("1", "1.2", "1.2.3")
- Dependencies flowing forward between waves of activities, mixing FS/SS/FF
- Diamond patterns (convergence points) and occasional leads/lags
- Milestones (duration 0)

Usage:
    python -m scripts.seed [--nodes 500] [--clear]

Options:
    --nodes N    Number of tasks to generate (default: 500)
    --clear      Clear existing data before seeding
    --project    Name of the project to create
    --benchmark  Time an in-process full recompute after seeding
    --recompute  Enqueue a background recompute after seeding
"""

import argparse
import asyncio
import random
import time
import uuid
from datetime import date

from sqlalchemy import text

from keystone.database import async_session_maker, init_db
from keystone.exceptions import CycleDetectedError, DuplicateEdgeError
from keystone.models import Project
from keystone.models.enums import RelationshipType
from keystone.repository import SqlScheduleRepository
from keystone.services.critical_path import schedule_snapshot
from keystone.services.graph import DependencyGraph
from keystone.services.snapshot import ScheduleSettings, ScheduleSnapshot, TaskRecord

RELATIONSHIP_WEIGHTS = [
    (RelationshipType.FINISH_TO_START, 0.75),
    (RelationshipType.START_TO_START, 0.15),
    (RelationshipType.FINISH_TO_FINISH, 0.10),
]


async def clear_data():
    """Clear all existing data."""
    print("Clearing existing data...")
    async with async_session_maker() as session:
        await session.execute(text(
            "TRUNCATE baseline_tasks, baselines, float_paths, schedule_loops, resource_assignments, "
            "task_relationships, tasks, projects, calendar_exceptions, calendars CASCADE"
        ))
        await session.commit()
    print("Data cleared.")


async def create_project(name: str, anchor_date: date) -> Project:
    """Create a project for the tasks."""
    async with async_session_maker() as session:
        project = Project(
            name=name,
            description="Performance test project",
            project_type="benchmark",
            anchor_date=anchor_date,
        )
        session.add(project)
        await session.commit()
        await session.refresh(project)
        return project


def generate_snapshot(project_id: uuid.UUID, anchor_date: date, num_nodes: int = 500) -> ScheduleSnapshot:
    """
    Generate a realistic WBS and dependency network in memory.

    Strategy:
    - Top-level phases each hold a few work packages (summary tasks)
    - Activities are leaves under work packages and form the dependency "waves"
    - Each wave depends on 1-3 activities from the previous 3 waves
    - 10% of activities are milestones (duration=0)
    """
    snapshot = ScheduleSnapshot(
        project_id=project_id,
        settings=ScheduleSettings(anchor_date=anchor_date),
    )

    num_phases = max(2, num_nodes // 100)
    packages_per_phase = 4
    summaries = num_phases * (1 + packages_per_phase)
    num_activities = max(num_nodes - summaries, num_phases)

    print(f"Generating {num_phases} phases, {num_phases * packages_per_phase} packages, "
          f"{num_activities} activities...")

    packages: list[TaskRecord] = []
    for p in range(1, num_phases + 1):
        phase = TaskRecord(id=uuid.uuid4(), project_id=project_id, name=f"Phase {p}", wbs_code=str(p))
        snapshot.tasks[phase.id] = phase
        for w in range(1, packages_per_phase + 1):
            package = TaskRecord(
                id=uuid.uuid4(),
                project_id=project_id,
                name=f"Package {p}.{w}",
                wbs_code=f"{p}.{w}",
                parent_task_id=phase.id,
            )
            snapshot.tasks[package.id] = package
            packages.append(package)

    activities: list[TaskRecord] = []
    next_segment = {package.id: 1 for package in packages}
    for i in range(num_activities):
        # Fill packages in order so waves roughly follow the WBS
        package = packages[min(i * len(packages) // num_activities, len(packages) - 1)]
        is_milestone = random.random() < 0.1
        activity = TaskRecord(
            id=uuid.uuid4(),
            project_id=project_id,
            name=f"Activity {i:04d}",
            wbs_code=f"{package.wbs_code}.{next_segment[package.id]}",
            parent_task_id=package.id,
            duration_days=0 if is_milestone else random.randint(1, 10),
        )
        next_segment[package.id] += 1
        snapshot.tasks[activity.id] = activity
        activities.append(activity)

    graph = DependencyGraph.from_snapshot(snapshot)
    wave_size = 50
    waves = [activities[i:i + wave_size] for i in range(0, len(activities), wave_size)]
    types, weights = zip(*RELATIONSHIP_WEIGHTS)

    for wave_index, wave in enumerate(waves[1:], start=1):
        for activity in wave:
            for _ in range(random.randint(1, 3)):
                # Prefer recent waves but occasionally reach back further
                source_wave = waves[random.randint(max(0, wave_index - 3), wave_index - 1)]
                predecessor = random.choice(source_wave)
                lag = random.choice([0, 0, 0, 1, 2, -1])
                try:
                    graph.add_edge(predecessor.id, activity.id, random.choices(types, weights)[0], lag)
                except (DuplicateEdgeError, CycleDetectedError):
                    continue

    snapshot.relationships = {rel.key: rel for rel in graph.relationships}

    start_time = time.time()
    schedule_snapshot(snapshot, graph)
    snapshot.version = 1
    print(f"Initial CPM: {(time.time() - start_time) * 1000:.2f}ms, finish {snapshot.project_finish}")

    return snapshot


async def save(snapshot: ScheduleSnapshot) -> None:
    async with async_session_maker() as session:
        repo = SqlScheduleRepository(session)
        print(f"Inserting {len(snapshot.tasks)} tasks and {len(snapshot.relationships)} relationships...")
        await repo.save_snapshot(snapshot, expected_version=0)
        await repo.commit()


async def run_benchmark(project_id: uuid.UUID) -> int:
    """Load the project back and time a full recompute through the coordinator."""
    from keystone.services.coordinator import get_coordinator

    async with async_session_maker() as session:
        repo = SqlScheduleRepository(session)
        start_time = time.time()
        snapshot = await get_coordinator().recompute(repo, project_id)
        elapsed = time.time() - start_time

    print("\n=== Benchmark: full recompute (load + CPM + save) ===")
    print(f"Elapsed: {elapsed * 1000:.2f}ms for {len(snapshot.tasks)} tasks")
    return snapshot.version


def print_stats(snapshot: ScheduleSnapshot):
    """Statistics about the generated network."""
    graph = DependencyGraph.from_snapshot(snapshot)
    num_tasks = len(snapshot.tasks)
    num_rels = len(snapshot.relationships)
    num_roots = len(graph.anchors())
    num_leaves = sum(1 for t in snapshot.tasks if not graph.successors_of(t))
    num_critical = sum(1 for t in snapshot.tasks.values() if t.is_critical)

    print("\n=== Schedule Statistics ===")
    print(f"Tasks:         {num_tasks}")
    print(f"Relationships: {num_rels}")
    print(f"Root tasks:    {num_roots} (no predecessors)")
    print(f"Leaf tasks:    {num_leaves} (no successors)")
    print(f"Critical:      {num_critical}")
    print(f"Float paths:   {len(snapshot.float_paths)}")
    print(f"Avg rels/task: {num_rels / num_tasks if num_tasks else 0:.2f}")


async def main():
    parser = argparse.ArgumentParser(description="Seed the database with a large WBS schedule")
    parser.add_argument("--nodes", type=int, default=500, help="Number of tasks to create")
    parser.add_argument("--clear", action="store_true", help="Clear existing data first")
    parser.add_argument("--project", type=str, default="Performance Test", help="Project name")
    parser.add_argument("--benchmark", action="store_true", help="Time a full recompute after seeding")
    parser.add_argument("--recompute", action="store_true", help="Enqueue a background recompute")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible graphs")

    args = parser.parse_args()
    if args.seed is not None:
        random.seed(args.seed)

    await init_db()
    if args.clear:
        await clear_data()

    anchor_date = date.today()
    project = await create_project(args.project, anchor_date)
    print(f"Created project: {project.name} ({project.id})")

    snapshot = generate_snapshot(project.id, anchor_date, args.nodes)
    await save(snapshot)
    print_stats(snapshot)

    version = snapshot.version
    if args.benchmark:
        version = await run_benchmark(project.id)

    if args.recompute:
        from keystone.worker import enqueue_recompute

        job_id = await enqueue_recompute(str(project.id), version)
        print(f"Recompute job enqueued: {job_id}")

    print(f"\nDone! Project ID: {project.id}")


if __name__ == "__main__":
    asyncio.run(main())

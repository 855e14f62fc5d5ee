"""
Tests for the vesting ledger: the vesting formula, schedule creation,
and the allow/record pair the token calls on every transfer.
"""
import unittest

from tokenlaunch.access import VESTING_CREATOR_ROLE
from tokenlaunch.crypto import ZERO_ADDRESS, contract_address, new_account_address
from tokenlaunch.db import MemoryDB
from tokenlaunch.errors import (
    InvalidScheduleParamsError, InvalidUserSchedulesError, InvalidVestingConfigError,
    NotTokenContractError, TokenRegistrationError, TokensNotVestedError, UnauthorizedError,
)
from tokenlaunch.store import StateStore
from tokenlaunch.vesting import VestingLedger, VestingSchedule, vested_amount


class FakeClock:
    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now


class TestVestedAmount(unittest.TestCase):
    def test_linear_vesting(self):
        schedule = VestingSchedule(1, b'token', b'user', start_time=0, cliff_duration=0,
                                   duration=100, total_amount=1000)
        self.assertEqual(vested_amount(schedule, 0), 0)
        self.assertEqual(vested_amount(schedule, 50), 500)
        self.assertEqual(vested_amount(schedule, 100), 1000)
        self.assertEqual(vested_amount(schedule, 150), 1000)

    def test_cliff_gates_onset_only(self):
        """After the cliff the fraction is still measured from start_time."""
        schedule = VestingSchedule(1, b'token', b'user', start_time=0, cliff_duration=30,
                                   duration=100, total_amount=1000)
        self.assertEqual(vested_amount(schedule, 20), 0)
        self.assertEqual(vested_amount(schedule, 29), 0)
        self.assertEqual(vested_amount(schedule, 30), 300)
        self.assertEqual(vested_amount(schedule, 40), 400)

    def test_rounds_down(self):
        schedule = VestingSchedule(1, b'token', b'user', start_time=10, cliff_duration=0,
                                   duration=3, total_amount=10)
        self.assertEqual(vested_amount(schedule, 11), 3)
        self.assertEqual(vested_amount(schedule, 12), 6)

    def test_derived_times(self):
        schedule = VestingSchedule(1, b'token', b'user', start_time=100, cliff_duration=20,
                                   duration=300, total_amount=1)
        self.assertEqual(schedule.cliff_end_time, 120)
        self.assertEqual(schedule.end_time, 400)


class VestingTestCase(unittest.TestCase):
    D_MIN = 100
    D_MAX = 1000
    CAP = 1_000_000

    def setUp(self):
        self.clock = FakeClock(1000)
        self.store = StateStore(MemoryDB())
        self.admin = new_account_address()
        self.user = new_account_address()
        self.token = contract_address(self.admin, 'token')
        self.launch = contract_address(self.admin, 'launch')

        self.vesting = VestingLedger(self.store, contract_address(self.admin, 'vesting'), self.clock)
        self.vesting.access.bootstrap(self.admin)
        self.vesting.access.grant_role(self.admin, VESTING_CREATOR_ROLE, self.admin)
        self.vesting.register_token(self.admin, self.token, self.D_MIN, self.D_MAX,
                                    self.CAP, self.launch)

    def create(self, amount=1000, start=None, duration=1000, cliff=0, user=None, caller=None):
        return self.vesting.create_vesting_schedule(
            caller or self.admin, self.token, user or self.user,
            self.clock.now if start is None else start, duration, cliff, amount)


class TestTokenRegistration(VestingTestCase):
    def test_registered_config(self):
        config = self.vesting.get_vesting_config(self.token)
        self.assertEqual((config.d_min, config.d_max), (self.D_MIN, self.D_MAX))
        self.assertEqual(config.total_supply_cap, self.CAP)
        self.assertEqual(config.launch_contract, self.launch)

    def test_duplicate_registration(self):
        with self.assertRaises(TokenRegistrationError):
            self.vesting.register_token(self.admin, self.token, 1, 2, 3)

    def test_invalid_ranges(self):
        other = contract_address(self.admin, 'other')
        for d_min, d_max in ((0, 10), (10, 0), (20, 10)):
            with self.assertRaises(InvalidVestingConfigError):
                self.vesting.register_token(self.admin, other, d_min, d_max, self.CAP)
        with self.assertRaises(InvalidVestingConfigError):
            self.vesting.register_token(self.admin, ZERO_ADDRESS, 1, 2, self.CAP)
        self.assertIsNone(self.vesting.get_vesting_config(other))

    def test_registration_requires_admin(self):
        with self.assertRaises(UnauthorizedError):
            self.vesting.register_token(self.user, contract_address(self.admin, 'x'), 1, 2, 3)

    def test_set_vesting_config(self):
        self.vesting.set_vesting_config(self.admin, self.token, 200, 2000)
        config = self.vesting.get_vesting_config(self.token)
        self.assertEqual((config.d_min, config.d_max), (200, 2000))
        self.assertEqual(config.launch_contract, self.launch)
        event = self.store.events.last('VestingConfigUpdated')
        self.assertEqual(event['d_max'], 2000)

        with self.assertRaises(InvalidVestingConfigError):
            self.vesting.set_vesting_config(self.admin, self.token, 500, 400)
        with self.assertRaises(TokenRegistrationError):
            self.vesting.set_vesting_config(self.admin, contract_address(self.admin, 'x'), 1, 2)


class TestScheduleCreation(VestingTestCase):
    def test_ids_are_sequential(self):
        self.assertEqual(self.vesting.next_schedule_id, 1)
        first = self.create()
        second = self.create(amount=50)
        self.assertEqual((first, second), (1, 2))
        self.assertEqual(self.vesting.next_schedule_id, 3)

        schedule = self.vesting.get_schedule_by_id(second)
        self.assertEqual(schedule.total_amount, 50)
        self.assertEqual(schedule.transferred_amount, 0)
        self.assertEqual(schedule.user, self.user)
        self.assertEqual(schedule.end_time, self.clock.now + 1000)
        self.assertIsNone(self.vesting.get_schedule_by_id(99))

    def test_created_event(self):
        schedule_id = self.create(amount=700, duration=500, cliff=10)
        event = self.store.events.last('VestingScheduleCreated')
        self.assertEqual(event['schedule_id'], schedule_id)
        self.assertEqual(event['total_amount'], 700)
        self.assertEqual(event['cliff_duration'], 10)

    def test_schedules_listed_oldest_first(self):
        ids = [self.create(amount=a) for a in (10, 20, 30)]
        schedules = self.vesting.get_user_vesting_schedules(self.token, self.user)
        self.assertEqual([s.id for s in schedules], ids)
        self.assertEqual(self.vesting.get_user_vesting_schedules(self.token, self.admin), [])

    def test_rejected_parameters(self):
        cases = [
            ('duration', dict(duration=self.D_MIN - 1)),
            ('duration', dict(duration=self.D_MAX + 1)),
            ('cliff_duration', dict(duration=200, cliff=200)),
            ('cliff_duration', dict(cliff=-1)),
            ('total_amount', dict(amount=0)),
            ('total_amount', dict(amount=self.CAP + 1)),
            ('end_time', dict(start=self.clock.now - 1000, duration=1000)),
            ('start_time', dict(start=self.clock.now + self.D_MAX + 1)),
            ('user', dict(user=ZERO_ADDRESS)),
        ]
        for param, kwargs in cases:
            with self.subTest(param=param, kwargs=kwargs):
                with self.assertRaises(InvalidScheduleParamsError) as ctx:
                    self.create(**kwargs)
                self.assertEqual(ctx.exception.param, param)
        self.assertEqual(self.vesting.next_schedule_id, 1)

    def test_backdated_and_future_dated(self):
        backdated = self.create(start=self.clock.now - 500, duration=1000)
        self.create(start=self.clock.now + self.D_MAX, duration=self.D_MAX)
        self.assertEqual(self.vesting.get_schedule_by_id(backdated).available_at(self.clock.now), 500)
        self.assertEqual(self.vesting.get_vested_amount_for_user(self.token, self.user), 500)

    def test_creator_role_or_launch_contract(self):
        with self.assertRaises(UnauthorizedError):
            self.create(caller=self.user)
        schedule_id = self.create(caller=self.launch)
        self.assertEqual(schedule_id, 1)

    def test_unregistered_token(self):
        with self.assertRaises(TokenRegistrationError):
            self.vesting.create_vesting_schedule(self.admin, contract_address(self.admin, 'x'),
                                                 self.user, self.clock.now, 500, 0, 1)


class TestTransferHook(VestingTestCase):
    def test_replay_protection(self):
        self.create(amount=1000, duration=1000)
        self.clock.now += 600

        self.assertTrue(self.vesting.is_transfer_allowed(self.token, self.user, 600, self.token))
        self.vesting.record_transfer(self.token, self.user, 200, self.token)

        self.assertFalse(self.vesting.is_transfer_allowed(self.token, self.user, 500, self.token))
        self.assertTrue(self.vesting.is_transfer_allowed(self.token, self.user, 400, self.token))
        self.assertEqual(self.vesting.get_vested_amount_for_user(self.token, self.user), 400)
        event = self.store.events.last('TransferRecorded')
        self.assertEqual((event['user'], event['amount']), (self.user, 200))

    def test_oldest_schedule_consumed_first(self):
        first = self.create(amount=1000, duration=1000)
        second = self.create(amount=1000, duration=1000)
        self.clock.now += 500

        self.vesting.record_transfer(self.token, self.user, 700, self.token)
        self.assertEqual(self.vesting.get_schedule_by_id(first).transferred_amount, 500)
        self.assertEqual(self.vesting.get_schedule_by_id(second).transferred_amount, 200)
        self.assertEqual(self.vesting.get_vested_amount_for_user(self.token, self.user), 300)

    def test_capacity_sums_across_schedules(self):
        self.create(amount=1000, duration=1000)
        self.create(amount=500, duration=500)
        self.clock.now += 500
        self.assertEqual(self.vesting.get_vested_amount_for_user(self.token, self.user), 1000)
        self.assertEqual(
            self.vesting.get_vested_amount_for_user(self.token, self.user, at=self.clock.now + 10_000),
            1500)

    def test_record_more_than_vested_fails_without_changes(self):
        schedule_id = self.create(amount=1000, duration=1000)
        self.clock.now += 100
        root = self.store.root_hash

        with self.assertRaises(TokensNotVestedError) as ctx:
            self.vesting.record_transfer(self.token, self.user, 101, self.token)
        self.assertEqual(ctx.exception.available, 100)
        self.assertEqual(self.store.root_hash, root)
        self.assertEqual(self.vesting.get_schedule_by_id(schedule_id).transferred_amount, 0)

    def test_record_without_schedules(self):
        with self.assertRaises(InvalidUserSchedulesError):
            self.vesting.record_transfer(self.token, self.user, 1, self.token)
        self.assertFalse(self.vesting.is_transfer_allowed(self.token, self.user, 1, self.token))

    def test_zero_amount_is_a_no_op(self):
        events = len(self.store.events)
        self.vesting.record_transfer(self.token, self.user, 0, self.token)
        self.assertEqual(len(self.store.events), events)

    def test_only_the_token_may_call(self):
        self.create()
        with self.assertRaises(NotTokenContractError):
            self.vesting.is_transfer_allowed(self.user, self.user, 1, self.token)
        with self.assertRaises(NotTokenContractError):
            self.vesting.record_transfer(self.launch, self.user, 1, self.token)
        unregistered = contract_address(self.admin, 'unregistered')
        with self.assertRaises(NotTokenContractError):
            self.vesting.is_transfer_allowed(unregistered, self.user, 1, unregistered)


if __name__ == '__main__':
    unittest.main()

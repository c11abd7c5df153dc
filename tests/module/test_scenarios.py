"""End-to-end administrative scenarios

Replays the full sample workflow against every store: create a pre-split
table, load the sample people, index, alter, read, filter, delete and drop,
then the large-object round trip.
"""

import pytest

from colstore_connect.client import ColumnStoreClient
from colstore_connect.core import LargeObjectPolicy, StorageClass
from colstore_connect.core.filters import all_of, column_filter
from colstore_connect.models import (
    ColumnFamilyDescriptor,
    IndexColumn,
    IndexSpecification,
    Put,
    ScanRequest,
    TableDescriptor,
    TableState,
)

pytestmark = pytest.mark.scenario

PEOPLE = [
    ("012005000201", "Zhang San", "Male", "19", "Shenzhen, Guangdong"),
    ("012005000202", "Li Wanting", "Female", "23", "Shijiazhuang, Hebei"),
    ("012005000203", "Wang Ming", "Male", "26", "Ningbo, Zhejiang"),
    ("012005000204", "Li Gang", "Male", "18", "Xiangyang, Hubei"),
    ("012005000205", "Zhao Enru", "Female", "21", "Shangrao, Jiangxi"),
    ("012005000206", "Chen Long", "Male", "32", "Zhuzhou, Hunan"),
    ("012005000207", "Zhou Wei", "Female", "29", "Nanyang, Henan"),
    ("012005000208", "Yang Yiwen", "Female", "30", "Kaixian, Chongqing"),
    ("012005000209", "Xu Bing", "Male", "26", "Weinan, Shaanxi"),
    ("012005000210", "Xiao Kai", "Male", "25", "Dalian, Liaoning"),
]


def people_puts() -> list[Put]:
    return [
        Put.build(
            key,
            {"info:name": name, "info:gender": gender, "info:age": age, "info:address": address},
        )
        for key, name, gender, age, address in PEOPLE
    ]


async def names(client: ColumnStoreClient, table: str, request: ScanRequest) -> list[bytes]:
    return [row.value("info", "name") for row in await client.data.scan_all(table, request)]


async def test_sample_workflow(client: ColumnStoreClient, users_descriptor: TableDescriptor):
    schema = client.schema
    table = users_descriptor.name

    # create with pre-split regions, then split further
    await schema.create_table(users_descriptor, split_keys=["A", "D", "F", "H"])
    assert len(await schema.list_regions(table)) == 5
    regions = await schema.split_table(table, ["012005000205"])
    assert len(regions) == 6

    await client.data.put_many(table, people_puts())

    index = IndexSpecification(
        name="index_name", columns=[IndexColumn(family="info", qualifier="name")]
    )
    await client.indexes.create_index(table, index)
    assert await client.indexes.index_exists(table, "index_name")

    by_name = ScanRequest(filter=column_filter("info:name", "=", "Li Gang"))
    rows = await client.data.scan_all(table, by_name)
    assert [row.row_key for row in rows] == [b"012005000204"]

    # add the education family only when it is missing
    education = ColumnFamilyDescriptor(name="education")
    assert await schema.add_column_family(table, education) is True
    assert await schema.add_column_family(table, education) is False
    described = await schema.describe_table(table)
    assert described.family_names == ["info", "education"]
    assert await schema.table_state(table) is TableState.ONLINE

    row = await client.data.get(table, "012005000201", columns=["info:name", "info:address"])
    assert row.to_dict() == {"info:name": b"Zhang San", "info:address": b"Shenzhen, Guangdong"}

    everyone = await names(client, table, ScanRequest(columns=["info:name"]))
    assert everyone == [person[1].encode() for person in PEOPLE]

    xu_bing = ScanRequest(
        columns=["info:name"], filter=column_filter("info:name", "=", "Xu Bing")
    )
    assert await names(client, table, xu_bing) == [b"Xu Bing"]

    twenties = ScanRequest(
        columns=["info:name"],
        filter=all_of(
            column_filter("info:age", ">=", "20"),
            column_filter("info:age", "<=", "29"),
        ),
    )
    assert await names(client, table, twenties) == [
        b"Li Wanting",
        b"Wang Ming",
        b"Zhao Enru",
        b"Zhou Wei",
        b"Xu Bing",
        b"Xiao Kai",
    ]

    await client.data.delete(table, "012005000201")
    assert (await client.data.get(table, "012005000201")).is_empty

    assert await client.indexes.drop_index(table, "index_name") is True
    assert await client.indexes.drop_index(table, "index_name") is False
    assert await schema.drop_table(table) is True
    assert not await schema.table_exists(table)


async def test_mob_workflow(client: ColumnStoreClient):
    descriptor = TableDescriptor(
        name="mob_table_test", families=[LargeObjectPolicy.mob_family("mobcf", threshold=10)]
    )
    await client.schema.create_table(descriptor)

    value = b"x" * 1000
    await client.data.put(descriptor.name, "row", {"mobcf:cf1": value})
    await client.schema.flush_table(descriptor.name)

    rows = await client.data.scan_all(descriptor.name, ScanRequest(columns=["mobcf:cf1"]))
    assert [row.value("mobcf", "cf1") for row in rows] == [value]
    classes = await client.data.storage_classes(descriptor.name, "row")
    assert classes == {"mobcf:cf1": StorageClass.MOB}

    assert await client.schema.drop_table(descriptor.name) is True


async def test_grants_survive_alter(client: ColumnStoreClient, users_table: str):
    await client.acl.grant("test_user", "RW", users_table, family="info", qualifier="age")
    await client.schema.add_column_family(users_table, ColumnFamilyDescriptor(name="education"))

    permissions = await client.acl.list_permissions(users_table)
    assert [(p.principal, p.scope, p.code) for p in permissions] == [
        ("test_user", "qualifier", "RW")
    ]


async def test_single_column_read_back(client: ColumnStoreClient):
    await client.schema.create_table(
        TableDescriptor(name="T", families=[ColumnFamilyDescriptor(name="info")])
    )
    await client.data.put("T", "r1", {"info:name": "Ann"})

    row = await client.data.get("T", "r1", columns=["info:name"])
    assert row.to_dict() == {"info:name": b"Ann"}


async def test_two_digit_ages_match_numeric_order(client: ColumnStoreClient, users_table: str):
    await client.data.put_many(
        users_table,
        [Put.build(f"r{age}", {"info:age": str(age)}) for age in (20, 25, 30)],
    )
    in_twenties = ScanRequest(
        filter=all_of(column_filter("info:age", ">=", "20"), column_filter("info:age", "<=", "29"))
    )
    rows = await client.data.scan_all(users_table, in_twenties)
    assert [row.value("info", "age") for row in rows] == [b"20", b"25"]

    # byte order diverges from numeric order once lengths differ
    await client.data.put(users_table, "r9", {"info:age": "9"})
    at_least_twenty = ScanRequest(filter=column_filter("info:age", ">=", "20"))
    rows = await client.data.scan_all(users_table, at_least_twenty)
    assert b"9" in [row.value("info", "age") for row in rows]

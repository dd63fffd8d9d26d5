from truth import Store

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Adding and removing rows")
print("-" * 100)
print()

# A store keyed on "id" refuses a second row with the same id.
users = Store("users", key="id")

log_change = lambda removed, added, data: print(f"+{len(added)} -{len(removed)} -> {list(data)}")
subscription = users.on("change", log_change)

users.add({"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"})
users.add({"id": 1, "name": "Imposter"})  # Ignored, no change event
users.remove({"id": 2})  # Any object with the same id removes the owned row

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Transforms")
print("-" * 100)
print()


# Transforms run over every recomputation. Named functions can be undone by name.
def greeting(row):
    return {"greeting": f"Hello {row['name']}"}


users.transform("map", greeting)
print(users.get())

# The projection still resolves to the owned row it came from.
projection = users.find("greeting", "Hello Alice")
print(users.origin(projection))

users.undo("map", "greeting")
print(users.get())

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Merging stores")
print("-" * 100)
print()

subscription.unsubscribe()

remote = Store("remote", key="id")
users.merge(remote)  # Dedup on "id"; users' own rows win

remote.add({"id": 1, "name": "Stale Alice"}, {"id": 3, "name": "Carol"})
print(users.get())  # Alice from users, Carol from remote

remote.destroy()  # Carol disappears, users keeps working
print(users.get())

users.destroy()
